from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from fraglog import grammar as g
from fraglog.errors import GrammarRejected, ParseFailure, Unclassifiable
from fraglog.models import Classification, FailedParse, ParsedEvent, Record

log = logging.getLogger(__name__)

UNCLASSIFIED = "unclassified"

# chat commands with their own sub-kind; anything else starting with "." is "chat-command"
CHAT_COMMANDS = {
    "pause": "chat-pause-command",
    "forcepause": "chat-pause-command",
    "restore": "chat-restore-command",
    "resotre": "chat-restore-command",
    "ready": "chat-ready-command",
    "rdy": "chat-ready-command",
    "unpause": "chat-unpause-command",
    "tech": "chat-tech-command",
    "tac": "chat-tac-command",
    "asay": "chat-admin-say",
}

PLAYER_TRIGGERS = {
    "Planted_The_Bomb": "bomb-planted",
    "Defused_The_Bomb": "bomb-defused",
    "Begin_Bomb_Defuse_Without_Kit": "bomb-begin-defuse",
    "Begin_Bomb_Defuse_With_Kit": "bomb-begin-defuse",
    "Got_The_Bomb": "bomb-got",
    "Dropped_The_Bomb": "bomb-dropped",
    "Bomb_Begin_Plant": "bomb-begin-plant",
}

WORLD_TRIGGERS = {
    "Round_Start": "round-start",
    "Round_End": "round-end",
    "Match_Start": "match-start",
    "Game_Commencing": "game-commencing",
    "Round_Freeze_End": "freeze-period-end",
}


# ----------------------------
# Helpers
# ----------------------------
def _slug(text: str) -> str:
    text = text.strip().lower()
    text = re.sub(r"[{}:]", "", text)
    return re.sub(r"[\s_]+", "-", text).strip("-")


def chat_kind(text: str) -> str:
    if text.startswith("."):
        command = text[1:].lower()
        for prefix, kind in CHAT_COMMANDS.items():
            if command.startswith(prefix):
                return kind
        return "chat-command"
    if text in ("gg", "gg wp"):
        return "chat-gg"
    return "chat"


def cvar_kind(name: str) -> str:
    if not name.startswith("mp_"):
        return "server-cvar"
    if name == "mp_maxrounds":
        return "cvar-maxrounds"
    if "overtime" in name:
        return "cvar-overtime"
    if name == "mp_freezetime":
        return "cvar-freezetime"
    if name == "mp_tournament":
        return "cvar-tournament"
    return "cvar-mp-setting"


def trigger_kind(event: str) -> str:
    slug = _slug(event)
    return f"trigger-{slug}" if slug else "generic-trigger"


# ----------------------------
# Grammar message -> event kind
# ----------------------------
_KIND_BY_TYPE: Dict[type, str] = {
    g.PlayerKill: "kill",
    g.PlayerAttack: "attack",
    g.PlayerKilledBomb: "killed-by-bomb",
    g.PlayerSuicide: "suicide",
    g.PlayerConnected: "player-connect",
    g.PlayerDisconnected: "player-disconnect",
    g.PlayerEntered: "player-entered",
    g.PlayerValidated: "userid-validated",
    g.PlayerSwitched: "team-switch",
    g.PlayerPurchase: "purchase",
    g.PlayerMoneyChange: "money-change",
    g.PlayerLeftBuyzone: "left-buyzone",
    g.PlayerPickedUp: "picked-up",
    g.PlayerDropped: "dropped",
    g.PlayerThrew: "grenade-thrown",
    g.PlayerBlinded: "player-blinded",
    g.TeamScored: "team-scored",
    g.TeamPlaying: "team-playing",
    g.MatchStatus: "match-status",
    g.GameOver: "match-end",
    g.RconCommand: "rcon-command",
    g.LoadingMap: "map-loading",
    g.StartedMap: "map-started",
    g.FreezePeriod: "freeze-period-start",
}


def grammar_kind(msg: g.GrammarMessage) -> str:
    if isinstance(msg, g.PlayerSay):
        return chat_kind(msg.text)
    if isinstance(msg, g.PlayerKillAssist):
        return "flash-assist" if msg.flash else "kill-assist"
    if isinstance(msg, g.PlayerTriggered):
        return PLAYER_TRIGGERS.get(msg.event) or trigger_kind(msg.event)
    if isinstance(msg, g.WorldTriggered):
        if msg.event.startswith("Restart_Round"):
            return "round-restart"
        return WORLD_TRIGGERS.get(msg.event) or trigger_kind(msg.event)
    if isinstance(msg, g.TeamTriggered):
        return "team-notice" if msg.event.startswith("SFUI_Notice") else "team-triggered"
    if isinstance(msg, g.Accolade):
        stage = "final" if msg.final else "round"
        return f"accolade-{stage}-{_slug(msg.type)}"
    if isinstance(msg, g.ServerCvar):
        return cvar_kind(msg.name)
    if isinstance(msg, g.LogFile):
        return f"log-file-{msg.action}"
    if isinstance(msg, g.MatchPause):
        return f"match-pause-{msg.state}"
    return _KIND_BY_TYPE.get(type(msg), UNCLASSIFIED)


# ----------------------------
# Heuristic rules
# ----------------------------
Predicate = Callable[[str], bool]
KindFn = Callable[[str], str]
Extractor = Callable[[str], Dict[str, Any]]


@dataclass(frozen=True)
class Rule:
    name: str
    matches: Predicate
    kind: Union[str, KindFn]
    extract: Optional[Extractor] = None

    def kind_for(self, text: str) -> str:
        return self.kind(text) if callable(self.kind) else self.kind


def _has(*needles: str) -> Predicate:
    return lambda text: all(n in text for n in needles)


def _first(text: str, mapping: List[tuple], default: str) -> str:
    for needle, kind in mapping:
        if needle in text:
            return kind
    return default


def _accolade_kind(text: str) -> str:
    parts = text.split(",")
    if len(parts) > 1:
        slug = _slug(parts[1])
        if slug:
            return f"accolade-{slug}"
    return "accolade"


_SAY_RE = re.compile(r'" say(?:_team)? "(?P<text>.*)"')
_TRIGGER_RE = re.compile(r'triggered "(?P<event>[^"]*)"')
_QUOTED_CVAR_RE = re.compile(r'"(?P<name>mp_\w+)"')


def _say_text(text: str) -> Optional[str]:
    m = _SAY_RE.search(text)
    return m.group("text") if m else None


def _say_kind(text: str) -> str:
    msg = _say_text(text)
    return chat_kind(msg) if msg is not None else "chat"


def _say_extract(text: str) -> Dict[str, Any]:
    msg = _say_text(text)
    return {"text": msg} if msg is not None else {}


def _trigger_event(text: str) -> Optional[str]:
    m = _TRIGGER_RE.search(text)
    return m.group("event") if m and m.group("event") else None


def _triggered_kind(text: str) -> str:
    event = _trigger_event(text)
    if event is None:
        return "generic-trigger"
    if event == "Round_Freeze_End":
        return "freeze-period-end"
    return trigger_kind(event)


def _triggered_extract(text: str) -> Dict[str, Any]:
    event = _trigger_event(text)
    return {"event": event} if event else {}


def _cvar_extract(text: str) -> Dict[str, Any]:
    m = _QUOTED_CVAR_RE.search(text)
    return {"name": m.group("name")} if m else {}


def _is_stats_field(key: str) -> Predicate:
    return lambda text: f'"{key}' in text and ":" in text


# Evaluated top to bottom; first match wins. Specific rules must sit above the general
# ones they overlap with ("rcon from" above "mp_", team notices above "triggered").
HEURISTIC_RULES: List[Rule] = [
    Rule("money-change", _has("money change"), "money-change"),
    Rule("attack", _has("attacked", "with"), "attack"),
    Rule("blinded", _has("blinded for", "by"), "player-blinded"),
    Rule("flashbang", _has("threw flashbang"), "grenade-thrown"),
    Rule("left-buyzone", _has("left buyzone"), "left-buyzone"),
    Rule("validated", _has("STEAM USERID validated"), "userid-validated"),
    Rule("accolade", _has("ACCOLADE"), _accolade_kind),
    Rule("match-status", _has("MatchStatus:"),
         lambda t: _first(t, [("Score:", "match-status"), ("Team playing", "team-playing")], "match-status")),
    Rule("match-pause", _has("Match pause"),
         lambda t: _first(t, [("enabled", "match-pause-enabled"), ("disabled", "match-pause-disabled")], "match-pause")),
    Rule("match-unpause", _has("Match unpaused"), "match-unpause"),
    Rule("throw-debug", _has("sv_throw"),
         lambda t: _first(t, [
             ("sv_throw_molotov", "throw-debug-molotov"),
             ("sv_throw_smokegrenade", "throw-debug-smoke"),
             ("sv_throw_flashgrenade", "throw-debug-flash"),
             ("sv_throw_hegrenade", "throw-debug-he"),
         ], "throw-debug")),
    Rule("bomb-planted", _has("planted the bomb"), "bomb-planted"),
    Rule("bomb-defused", _has("defused the bomb"), "bomb-defused"),
    Rule("bomb-dropped", _has("dropped the bomb"), "bomb-dropped"),
    Rule("bomb-begin-plant", _has("Bomb_Begin_Plant"), "bomb-begin-plant"),
    Rule("bomb-planted-trigger", _has("Bomb_Planted"), "bomb-planted"),
    Rule("bomb-defused-trigger", _has("Bomb_Defused"), "bomb-defused"),
    Rule("rcon", _has("rcon from"), "rcon-command"),
    Rule("server-cvar", _has("server_cvar"), "server-cvar"),
    Rule("mp-cvar", _has('"mp_'), lambda t: cvar_kind(_cvar_extract(t).get("name", "mp_")), _cvar_extract),
    Rule("log-file", _has("Log file"),
         lambda t: _first(t, [("started", "log-file-started"), ("closed", "log-file-closed")], "log-file")),
    Rule("loading-map", _has("Loading map"), "map-loading"),
    Rule("started-map", _has("Started map"), "map-started"),
    Rule("team-playing", _has("Team playing"), "team-playing"),
    Rule("freeze-period", _has("Starting Freeze period"), "freeze-period-start"),
    Rule("game-over", _has("Game Over"), "match-end"),
    Rule("team-notice", _has("Team ", "triggered"),
         lambda t: "team-notice" if "SFUI_Notice" in t else "team-triggered"),
    Rule("stats-begin", _has("JSON_BEGIN{"), "stats-json-start"),
    Rule("stats-end", _has("}}JSON_END"), "stats-json-end"),
    Rule("stats-player", _is_stats_field("player_"), "stats-player-data"),
    Rule("stats-players", _is_stats_field('players"'), "stats-json-players"),
    Rule("stats-fields", _is_stats_field('fields"'), "stats-json-fields"),
    Rule("stats-server", _is_stats_field('server"'), "stats-json-server"),
    Rule("stats-score-ct", _is_stats_field('score_ct"'), "stats-json-score-ct"),
    Rule("stats-score-t", _is_stats_field('score_t"'), "stats-json-score-t"),
    Rule("stats-rounds", _is_stats_field('rounds_played"'), "stats-json-rounds"),
    Rule("stats-round-number", _is_stats_field('round_number"'), "stats-json-round-number"),
    Rule("stats-name", _is_stats_field('name"'), "stats-json-name"),
    Rule("stats-version", _is_stats_field('version"'), "stats-json-version"),
    Rule("stats-timestamp", _is_stats_field('timestamp"'), "stats-json-timestamp"),
    Rule("stats-map", _is_stats_field('map"'), "stats-json-map"),
    Rule("chat", _has('" say'), _say_kind, _say_extract),
    Rule("triggered", _has('triggered "'), _triggered_kind, _triggered_extract),
]


def match_rule(text: str) -> Optional[Rule]:
    for rule in HEURISTIC_RULES:
        if rule.matches(text):
            return rule
    return None


# ----------------------------
# Public API
# ----------------------------
def classify(text: str) -> Classification:
    """
    Classify one canonical line.

    The grammar is tried first. When it reports an unknown body, or rejects the line
    outright, the heuristic table gets a go. Unknown bodies nothing matches end up as
    "unclassified"; rejected lines nothing matches raise Unclassifiable.
    """
    rejected: Optional[GrammarRejected] = None
    try:
        msg = g.parse_line(text)
    except GrammarRejected as e:
        rejected = e
    else:
        if not isinstance(msg, g.Unknown):
            data = msg.model_dump(mode="json")
            data["type"] = type(msg).__name__
            return Classification(event_kind=grammar_kind(msg), event_payload=data)

    rule = match_rule(text)
    if rule is not None:
        payload: Dict[str, Any] = {"raw": text, "rule": rule.name}
        if rule.extract:
            payload.update(rule.extract(text))
        return Classification(event_kind=rule.kind_for(text), event_payload=payload)

    if rejected is not None:
        raise Unclassifiable(str(rejected)) from rejected
    return Classification(event_kind=UNCLASSIFIED, event_payload={"raw": text})


def resolve_line(raw_line_id: str, source_id: str, text: str) -> Record:
    """Classify and wrap the outcome in the record that should be persisted."""
    try:
        result = classify(text)
    except ParseFailure as e:
        log.info("unclassifiable line %s: %s", raw_line_id, e)
        return FailedParse(raw_line_id=raw_line_id, source_id=source_id, error_message=str(e))

    return ParsedEvent(
        raw_line_id=raw_line_id,
        source_id=source_id,
        event_kind=result.event_kind,
        event_payload=result.event_payload,
    )
