from sopforge.utils.json_parser import parse_json_safely


def test_plain_object():
    assert parse_json_safely('{"a": 1}') == {"a": 1}


def test_code_fence_is_stripped():
    text = '```json\n{"waste_identified": []}\n```'
    assert parse_json_safely(text) == {"waste_identified": []}


def test_prose_around_object():
    text = 'Here is the audit:\n{"agents": [{"name": "X"}]}\nThanks!'
    assert parse_json_safely(text) == {"agents": [{"name": "X"}]}


def test_concatenated_objects_are_merged():
    text = '{"agents": [{"name": "A"}]}\n{"agents": [{"name": "B"}], "hybrid_steps": [2]}'
    result = parse_json_safely(text)
    assert [a["name"] for a in result["agents"]] == ["A", "B"]
    assert result["hybrid_steps"] == [2]


def test_concatenated_lists_are_flattened():
    assert parse_json_safely("[1, 2]\n[3]") == [1, 2, 3]


def test_unparsable_returns_none():
    assert parse_json_safely("not json at all") is None
    assert parse_json_safely("") is None
    assert parse_json_safely(None) is None
