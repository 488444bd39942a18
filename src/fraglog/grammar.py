"""
Fixed-grammar parser for Counter-Strike 2 server log lines.

A line is accepted only when it carries the standard header:

    L 08/19/2025 - 19:03:31: <body>

The body is then matched against GRAMMAR, an ordered table of (regex, message model).
Regex groups named ``prefix__field`` are folded into nested models, so
``attacker__name`` / ``attacker__slot`` become ``attacker=Player(name=..., slot=...)``.
A body that matches nothing becomes an Unknown message; a line without a valid
header raises GrammarRejected.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError, field_validator

from fraglog.errors import GrammarRejected

HEADER_RE = re.compile(r"^L (?P<date>\d{2}/\d{2}/\d{4}) - (?P<time>\d{2}:\d{2}:\d{2}): ?(?P<body>.*)$")


def _player(p: str) -> str:
    return (
        rf'"(?P<{p}__name>.*?)<(?P<{p}__slot>-?\d+)><(?P<{p}__steam_id>[^>]*)>'
        rf'(?:<(?P<{p}__team>[^>]*)>)?"'
    )


def _pos(p: str) -> str:
    num = r"-?\d+(?:\.\d+)?"
    return rf"\[(?P<{p}__x>{num}) (?P<{p}__y>{num}) (?P<{p}__z>{num})\]"


# ----------------------------
# Message models
# ----------------------------
class Player(BaseModel):
    name: str
    slot: int
    steam_id: str
    team: str = ""


class Position(BaseModel):
    x: float
    y: float
    z: float


class GrammarMessage(BaseModel):
    time: datetime


class Unknown(GrammarMessage):
    raw: str


class PlayerKill(GrammarMessage):
    attacker: Player
    attacker_pos: Position
    victim: Player
    victim_pos: Position
    weapon: str
    modifiers: List[str] = []

    @field_validator("modifiers", mode="before")
    @classmethod
    def _split(cls, v: Any) -> Any:
        return v.split() if isinstance(v, str) else v


class PlayerAttack(GrammarMessage):
    attacker: Player
    attacker_pos: Position
    victim: Player
    victim_pos: Position
    weapon: str
    damage: int
    damage_armor: int
    health: int
    armor: int
    hitgroup: str


class PlayerKillAssist(GrammarMessage):
    attacker: Player
    victim: Player
    flash: bool = False

    @field_validator("flash", mode="before")
    @classmethod
    def _flag(cls, v: Any) -> Any:
        return bool(v)


class PlayerKilledBomb(GrammarMessage):
    player: Player
    player_pos: Position


class PlayerSuicide(GrammarMessage):
    player: Player
    player_pos: Position
    weapon: str


class PlayerSay(GrammarMessage):
    player: Player
    channel: str
    text: str


class PlayerConnected(GrammarMessage):
    player: Player
    address: str


class PlayerDisconnected(GrammarMessage):
    player: Player
    reason: str


class PlayerEntered(GrammarMessage):
    player: Player


class PlayerValidated(GrammarMessage):
    player: Player


class PlayerSwitched(GrammarMessage):
    player: Player
    from_team: str
    to_team: str


class PlayerPurchase(GrammarMessage):
    player: Player
    item: str


class PlayerMoneyChange(GrammarMessage):
    player: Player
    before: int
    op: str
    amount: int
    after: int
    purchase: Optional[str] = None


class PlayerLeftBuyzone(GrammarMessage):
    player: Player
    items: List[str] = []

    @field_validator("items", mode="before")
    @classmethod
    def _split(cls, v: Any) -> Any:
        return v.split() if isinstance(v, str) else v


class PlayerPickedUp(GrammarMessage):
    player: Player
    item: str


class PlayerDropped(GrammarMessage):
    player: Player
    item: str


class PlayerThrew(GrammarMessage):
    player: Player
    grenade: str
    position: Position


class PlayerBlinded(GrammarMessage):
    victim: Player
    attacker: Player
    duration: float
    source: str
    entindex: int


class PlayerTriggered(GrammarMessage):
    player: Player
    event: str
    site: Optional[str] = None


class WorldTriggered(GrammarMessage):
    event: str
    map: Optional[str] = None


class TeamScored(GrammarMessage):
    team: str
    score: int
    players: int


class TeamTriggered(GrammarMessage):
    team: str
    event: str
    ct_score: int
    t_score: int


class TeamPlaying(GrammarMessage):
    team: str
    name: str


class Accolade(GrammarMessage):
    final: bool
    type: str
    player: str
    value: float
    position: int
    score: float

    @field_validator("final", mode="before")
    @classmethod
    def _stage(cls, v: Any) -> Any:
        return v == "FINAL" if isinstance(v, str) else v


class MatchStatus(GrammarMessage):
    ct_score: int
    t_score: int
    map: str
    rounds_played: int


class GameOver(GrammarMessage):
    mode: str
    map_group: str
    map: str
    ct_score: int
    t_score: int
    duration_min: int


class ServerCvar(GrammarMessage):
    name: str
    value: str


class RconCommand(GrammarMessage):
    address: str
    command: str


class LoadingMap(GrammarMessage):
    map: str


class StartedMap(GrammarMessage):
    map: str
    crc: Optional[str] = None


class LogFile(GrammarMessage):
    action: str
    file: Optional[str] = None


class FreezePeriod(GrammarMessage):
    action: str = "start"


class MatchPause(GrammarMessage):
    state: str
    reason: Optional[str] = None


# ----------------------------
# Grammar table (order matters: say first so chat text never reaches other patterns)
# ----------------------------
GRAMMAR: List[Tuple[re.Pattern, Type[GrammarMessage]]] = [
    (re.compile(rf'^{_player("player")} (?P<channel>say_team|say) "(?P<text>.*)"$'), PlayerSay),
    (re.compile(
        rf'^{_player("attacker")} {_pos("attacker_pos")} killed {_player("victim")} {_pos("victim_pos")} '
        rf'with "(?P<weapon>[^"]*)"(?: \((?P<modifiers>[^)]*)\))?'
    ), PlayerKill),
    (re.compile(
        rf'^{_player("attacker")} {_pos("attacker_pos")} attacked {_player("victim")} {_pos("victim_pos")} '
        rf'with "(?P<weapon>[^"]*)" \(damage "(?P<damage>\d+)"\) \(damage_armor "(?P<damage_armor>\d+)"\) '
        rf'\(health "(?P<health>\d+)"\) \(armor "(?P<armor>\d+)"\) \(hitgroup "(?P<hitgroup>[^"]*)"\)'
    ), PlayerAttack),
    (re.compile(rf'^{_player("attacker")} (?P<flash>flash-)?assisted killing {_player("victim")}'), PlayerKillAssist),
    (re.compile(rf'^{_player("player")} {_pos("player_pos")} was killed by the bomb'), PlayerKilledBomb),
    (re.compile(rf'^{_player("player")} {_pos("player_pos")} committed suicide with "(?P<weapon>[^"]*)"'), PlayerSuicide),
    (re.compile(rf'^{_player("player")} connected, address "(?P<address>[^"]*)"'), PlayerConnected),
    (re.compile(rf'^{_player("player")} disconnected \(reason "(?P<reason>[^"]*)"\)'), PlayerDisconnected),
    (re.compile(rf'^{_player("player")} entered the game'), PlayerEntered),
    (re.compile(rf'^{_player("player")} STEAM USERID validated'), PlayerValidated),
    (re.compile(rf'^{_player("player")} switched from team <(?P<from_team>[^>]*)> to <(?P<to_team>[^>]*)>'), PlayerSwitched),
    (re.compile(rf'^{_player("player")} purchased "(?P<item>[^"]*)"'), PlayerPurchase),
    (re.compile(
        rf'^{_player("player")} money change (?P<before>\d+)(?P<op>[+-])(?P<amount>\d+) = \$(?P<after>\d+)'
        rf'(?: \(tracked\))?(?: \(purchase: (?P<purchase>[^)]*)\))?'
    ), PlayerMoneyChange),
    (re.compile(rf'^{_player("player")} left buyzone with \[ ?(?P<items>[^\]]*)\]'), PlayerLeftBuyzone),
    (re.compile(rf'^{_player("player")} picked up "(?P<item>[^"]*)"'), PlayerPickedUp),
    (re.compile(rf'^{_player("player")} dropped "(?P<item>[^"]*)"'), PlayerDropped),
    (re.compile(rf'^{_player("player")} threw (?P<grenade>\w+) {_pos("position")}'), PlayerThrew),
    (re.compile(
        rf'^{_player("victim")} blinded for (?P<duration>\d+(?:\.\d+)?) by {_player("attacker")} '
        rf'from (?P<source>\w+) entindex (?P<entindex>\d+)'
    ), PlayerBlinded),
    (re.compile(rf'^{_player("player")} triggered "(?P<event>[^"]*)"(?: at bombsite (?P<site>\w+))?'), PlayerTriggered),
    (re.compile(r'^World triggered "(?P<event>[^"]*)"(?: on "(?P<map>[^"]*)")?'), WorldTriggered),
    (re.compile(r'^Team "(?P<team>[^"]*)" scored "(?P<score>\d+)" with "(?P<players>\d+)" players'), TeamScored),
    (re.compile(
        r'^Team "(?P<team>[^"]*)" triggered "(?P<event>[^"]*)" \(CT "(?P<ct_score>\d+)"\) \(T "(?P<t_score>\d+)"\)'
    ), TeamTriggered),
    (re.compile(r'^(?:MatchStatus: )?Team playing "(?P<team>[^"]*)": (?P<name>.*)$'), TeamPlaying),
    (re.compile(
        r'^ACCOLADE, (?P<final>FINAL|ROUND): \{(?P<type>[^}]*)\},\s*(?P<player>.*?),\s*VALUE: (?P<value>-?[\d.]+),'
        r'\s*POS: (?P<position>\d+),\s*SCORE: (?P<score>-?[\d.]+)'
    ), Accolade),
    (re.compile(
        r'^MatchStatus: Score: (?P<ct_score>\d+):(?P<t_score>\d+) on map "(?P<map>[^"]*)" '
        r'RoundsPlayed: (?P<rounds_played>-?\d+)'
    ), MatchStatus),
    (re.compile(
        r'^Game Over: (?P<mode>\w+) (?P<map_group>\S+) (?P<map>\S+) score (?P<ct_score>\d+):(?P<t_score>\d+) '
        r'after (?P<duration_min>\d+) min'
    ), GameOver),
    (re.compile(r'^server_cvar: "(?P<name>[^"]*)" "(?P<value>[^"]*)"'), ServerCvar),
    (re.compile(r'^"(?P<name>[^"]*)" = "(?P<value>[^"]*)"$'), ServerCvar),
    (re.compile(r'^rcon from "(?P<address>[^"]*)": command "(?P<command>.*)"$'), RconCommand),
    (re.compile(r'^Loading map "(?P<map>[^"]*)"'), LoadingMap),
    (re.compile(r'^Started map "(?P<map>[^"]*)"(?: \(CRC "(?P<crc>[^"]*)"\))?'), StartedMap),
    (re.compile(r'^Log file (?P<action>started|closed)(?: \(file "(?P<file>[^"]*)"\))?'), LogFile),
    (re.compile(r'^Starting Freeze period'), FreezePeriod),
    (re.compile(r'^Match pause is (?P<state>enabled|disabled)(?: - (?P<reason>.*))?$'), MatchPause),
]


def _fold(groups: Dict[str, Optional[str]]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in groups.items():
        if value is None:
            continue
        prefix, _, leaf = key.rpartition("__")
        if prefix:
            out.setdefault(prefix, {})[leaf] = value
        else:
            out[key] = value
    return out


def split_header(line: str) -> Tuple[datetime, str]:
    """Return (timestamp, body) or raise GrammarRejected."""
    m = HEADER_RE.match(line)
    if not m:
        raise GrammarRejected(f"no log header: {line[:80]!r}")
    try:
        ts = datetime.strptime(f"{m.group('date')} {m.group('time')}", "%m/%d/%Y %H:%M:%S")
    except ValueError as e:
        raise GrammarRejected(f"bad header timestamp: {e}") from e
    return ts, m.group("body")


def strip_header(line: str) -> str:
    m = HEADER_RE.match(line)
    return m.group("body") if m else line


def parse_line(line: str) -> GrammarMessage:
    ts, body = split_header(line.strip())
    body = body.strip()

    for pattern, model in GRAMMAR:
        m = pattern.match(body)
        if not m:
            continue
        try:
            return model.model_validate({"time": ts, **_fold(m.groupdict())})
        except ValidationError:
            # pattern matched but values did not fit the model; let later rules try
            continue

    return Unknown(time=ts, raw=body)
