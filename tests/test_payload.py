"""Tests for message payload handling."""

import xml.etree.ElementTree as ET

import pytest

from userstore import payload


class TestPayload:
    def test_serialize_element(self):
        element = ET.Element("message", {"type": "chat"})
        ET.SubElement(element, "body").text = "hi"
        assert payload.serialize(element) == '<message type="chat"><body>hi</body></message>'

    def test_serialize_string_unchanged(self):
        assert payload.serialize("<message/>") == "<message/>"

    def test_parse_fragments(self):
        fragments = payload.parse_fragments("<message><body>a</body></message><presence/>")
        assert [f.tag for f in fragments] == ["message", "presence"]

    def test_parse_malformed(self):
        with pytest.raises(ET.ParseError):
            payload.parse_fragments("<message>")

    def test_message_type(self):
        assert payload.message_type('<message type="groupchat"/>') == "groupchat"
        assert payload.message_type("<message/>") is None
        assert payload.message_type(ET.Element("message", {"type": "chat"})) == "chat"
