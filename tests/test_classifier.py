"""
Classification: grammar kinds, ordered heuristic rules and the two fallbacks.
"""

import pytest

from fraglog.classifier import (
    HEURISTIC_RULES,
    UNCLASSIFIED,
    chat_kind,
    classify,
    match_rule,
    resolve_line,
)
from fraglog.errors import Unclassifiable
from fraglog.models import FailedParse, ParsedEvent

from conftest import GG_LINE, HEADER

ALICE = '"Alice<2><[U:1:100]><CT>"'


def _rule_index(name):
    return [r.name for r in HEURISTIC_RULES].index(name)


class TestScenarios:

    def test_gg_wp_is_chat_gg(self):
        assert classify(GG_LINE).event_kind == "chat-gg"

    def test_headerless_accolade(self):
        result = classify("ACCOLADE, FINAL: {mvp}, P<1>, VALUE: 5.0, POS: 1, SCORE: 80.0")
        assert result.event_kind == "accolade-final-mvp"
        assert result.event_payload["rule"] == "accolade"

    def test_accolade_through_grammar_matches_heuristic_kind(self):
        line = HEADER + "ACCOLADE, FINAL: {mvp},\tP<1>,\tVALUE: 5.000000,\tPOS: 1,\tSCORE: 80.000000"
        assert classify(line).event_kind == "accolade-final-mvp"


class TestGrammarKinds:

    @pytest.mark.parametrize("body,kind", [
        (f'{ALICE} say "hello"', "chat"),
        (f'{ALICE} say ".pause"', "chat-pause-command"),
        (f'{ALICE} say ".whatever now"', "chat-command"),
        (f'{ALICE} say_team "gg"', "chat-gg"),
        (f'{ALICE} [1 2 3] killed "Bob<3><[U:1:200]><TERRORIST>" [4 5 6] with "ak47"', "kill"),
        (f'{ALICE} triggered "Planted_The_Bomb" at bombsite A', "bomb-planted"),
        (f'{ALICE} triggered "clantag"', "trigger-clantag"),
        ('World triggered "Round_Start"', "round-start"),
        ('World triggered "Restart_Round_(1_second)"', "round-restart"),
        ('Team "CT" triggered "SFUI_Notice_CTs_Win" (CT "1") (T "0")', "team-notice"),
        ('server_cvar: "mp_maxrounds" "24"', "cvar-maxrounds"),
        ('server_cvar: "sv_cheats" "0"', "server-cvar"),
        ('Loading map "de_dust2"', "map-loading"),
        ('Log file started (file "logs/x.log")', "log-file-started"),
        ("Match pause is enabled - mp_pause_match", "match-pause-enabled"),
    ])
    def test_kind(self, body, kind):
        assert classify(HEADER + body).event_kind == kind

    def test_payload_is_message_dump(self):
        payload = classify(GG_LINE).event_payload
        assert payload["type"] == "PlayerSay"
        assert payload["text"] == "gg wp"
        assert payload["player"]["steam_id"] == "[U:1:1]"
        assert payload["time"] == "2025-08-19T19:03:31"


class TestHeuristicOrdering:
    """First matching rule wins; specific rules sit above general ones."""

    def test_rcon_beats_mp_cvar(self):
        line = 'rcon from "10.0.0.1": bad "mp_maxrounds" "24"'
        result = classify(line)
        assert result.event_kind == "rcon-command"
        assert result.event_payload["rule"] == "rcon"

    def test_mp_cvar_alone(self):
        result = classify('console says "mp_maxrounds" changed')
        assert result.event_kind == "cvar-maxrounds"
        assert result.event_payload["name"] == "mp_maxrounds"

    def test_table_order(self):
        assert _rule_index("rcon") < _rule_index("server-cvar") < _rule_index("mp-cvar")
        assert _rule_index("team-notice") < _rule_index("triggered")

    def test_team_notice_before_generic_trigger(self):
        assert match_rule('Team "CT" triggered "SFUI_Notice_Terrorists_Win"').name == "team-notice"

    def test_chat_sub_kinds(self):
        assert classify('"P<1><[U:1:1]><CT>" say ".ready"').event_kind == "chat-ready-command"
        assert classify('"P<1><[U:1:1]><CT>" say "gg"').event_kind == "chat-gg"
        assert classify('"P<1><[U:1:1]><CT>" say "nice"').event_payload["text"] == "nice"

    @pytest.mark.parametrize("text,kind", [
        (".pausenow", "chat-pause-command"),
        (".READYUP", "chat-ready-command"),
        (".unpause please", "chat-unpause-command"),
        (".forcepause", "chat-pause-command"),
        (".stats", "chat-command"),
    ])
    def test_chat_commands_match_by_prefix(self, text, kind):
        assert chat_kind(text) == kind

    def test_generic_trigger(self):
        result = classify('someone triggered "Some_Event"')
        assert result.event_kind == "trigger-some-event"
        assert result.event_payload["event"] == "Some_Event"

    def test_unknown_body_matching_rule(self):
        assert classify(HEADER + '"round_number" : "3",').event_kind == "stats-json-round-number"


class TestFallbacks:

    def test_unknown_body_is_unclassified(self):
        result = classify(HEADER + "something odd happened")
        assert result.event_kind == UNCLASSIFIED
        assert result.event_payload == {"raw": HEADER + "something odd happened"}

    def test_rejected_and_unmatched_raises(self):
        with pytest.raises(Unclassifiable):
            classify("complete nonsense")

    def test_deterministic(self):
        for line in (GG_LINE, 'rcon from "x": "mp_y"', HEADER + "something odd happened"):
            assert classify(line) == classify(line)


class TestResolveLine:

    def test_parsed_event(self):
        record = resolve_line("raw-1", "srv", GG_LINE)
        assert isinstance(record, ParsedEvent)
        assert record.raw_line_id == "raw-1"
        assert record.source_id == "srv"
        assert record.event_kind == "chat-gg"

    def test_failed_parse(self):
        record = resolve_line("raw-2", "srv", "complete nonsense")
        assert isinstance(record, FailedParse)
        assert record.raw_line_id == "raw-2"
        assert record.retry_count == 0
        assert record.resolved is False
        assert "no log header" in record.error_message
