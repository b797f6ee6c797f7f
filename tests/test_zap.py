from matchpulse.ingestion.zap import ZapParser


class TestZapParser:
    def test_parse_update_frame(self):
        parsed = ZapParser.parse("\x14OV1234C1\x01U|IT=1234;SC=2-1;MG=67;|")
        assert parsed.is_zap
        assert parsed.topic == "OV1234C1"
        assert parsed.message_type == "U"
        assert parsed.data == {"IT": "1234", "SC": "2-1", "MG": "67"}

    def test_bare_keys_are_flags(self):
        parsed = ZapParser.parse("\x14OV1\x01U|IT=1;GO;TM=2;|")
        assert parsed.data["GO"] is True

    def test_unknown_and_malformed(self):
        assert ZapParser.parse("hello").kind == "unknown"
        assert ZapParser.parse("only|pipe").kind == "connection"
        malformed = ZapParser.parse("\x14OV1\x01Fnothing")
        assert malformed.kind == "malformed"
        assert malformed.topic == "OV1"

    def test_is_match_event(self):
        assert ZapParser.is_match_event(ZapParser.parse("\x14OV1\x01U|SC=1-0;|"))
        assert not ZapParser.is_match_event(ZapParser.parse("\x14OV1\x01U|NA=Foo;|"))
        assert not ZapParser.is_match_event(ZapParser.parse("\x14MatchTime\x01U|SC=1-0;|"))
        assert not ZapParser.is_match_event(ZapParser.parse("\x14S_SESSION\x01U|SC=1-0;|"))
        assert not ZapParser.is_match_event(ZapParser.parse("\x14INFO\x01U|SC=1-0;|"))

    def test_extract_goal(self):
        parsed = ZapParser.parse("\x14OV9\x01U|IT=9;EV=G;TM=1;PL=Kane;SC=1-0;|")
        data = ZapParser.extract_match_data(parsed)
        assert data["match_id"] == "9"
        assert data["event"] == "goal"
        assert data["team"] == "1"
        assert data["player"] == "Kane"
        assert data["score"] == "1-0"

    def test_extract_flag_event(self):
        parsed = ZapParser.parse("\x14OV9\x01U|IT=9;EV=X;YC;TM=2;|")
        data = ZapParser.extract_match_data(parsed)
        assert data["event"] == "yellow_card"
        assert data["event_code"] == "X"

    def test_flags_without_event_code_are_counts(self):
        parsed = ZapParser.parse("\x14OV9\x01U|IT=9;SC=1-0;YC=1;GO=1;|")
        data = ZapParser.extract_match_data(parsed)
        assert "event" not in data
        assert data["score"] == "1-0"

    def test_extract_without_event(self):
        data = ZapParser.extract_match_data(ZapParser.parse("\x14OV9\x01U|IT=9;PS=2;|"))
        assert "event" not in data
        assert data["period"] == "2"

    def test_format(self):
        parsed = ZapParser.parse("\x14OV9\x01U|IT=9;SC=1-0;|")
        assert ZapParser.format(parsed) == "[U] OV9: IT=9;SC=1-0"
        assert ZapParser.format(ZapParser.parse("hello")) == "[unknown] hello"
