import json
import time

import pytest

from studymap.mindmap.normalizer import (
    MAX_TREE_DEPTH,
    ParseFallback,
    ParseOk,
    build_mind_map_prompt,
    extract_json_object,
    fallback_mind_map,
    normalize,
    normalize_response,
    parse_concept_tree,
)


# ── extract_json_object ──────────────────────────────────────────────────────

def test_extract_stops_at_first_object():
    text = 'prefix {"a": 1} middle {"b": 2} suffix'
    assert extract_json_object(text) == '{"a": 1}'


def test_extract_handles_nesting_and_braces_in_strings():
    text = 'x {"a": {"b": "}{"}, "c": "say \\"}\\""} y'
    fragment = extract_json_object(text)
    assert json.loads(fragment) == {"a": {"b": "}{"}, "c": 'say "}"'}


def test_extract_returns_none_without_object():
    assert extract_json_object("no json here") is None
    assert extract_json_object('{"unclosed": [1, 2') is None


# ── parse_concept_tree ───────────────────────────────────────────────────────

def test_parse_nodes_shape(photosynthesis_payload):
    result = parse_concept_tree(photosynthesis_payload, "Photosynthesis")

    assert isinstance(result, ParseOk)
    assert result.root.id == "1"
    assert [c.label for c in result.root.children] == ["Light Reactions", "Calvin Cycle"]
    assert result.root.children[1].children[0].children == []


def test_parse_missing_children_is_empty():
    result = parse_concept_tree('{"id": "r", "label": "Root"}', "T")

    assert isinstance(result, ParseOk)
    assert result.root.children == []


def test_parse_null_children_and_root_node_shape():
    raw = '{"root_node": {"id": "r", "label": "Root", "children": null}}'
    result = parse_concept_tree(raw, "T")

    assert isinstance(result, ParseOk)
    assert result.root.id == "r"


def test_parse_repairs_missing_fields():
    raw = json.dumps({"nodes": [{"children": [{"title": "Named by title"}, "Bare leaf", {"id": 7}]}]})
    result = parse_concept_tree(raw, "My Title")

    assert isinstance(result, ParseOk)
    root = result.root
    assert root.id == "node-0"
    assert root.label == "My Title"
    assert [c.id for c in root.children] == ["node-0-0", "node-0-1", "7"]
    assert [c.label for c in root.children] == ["Named by title", "Bare leaf", "7"]


def test_parse_flat_node_list_is_nested():
    raw = json.dumps({
        "title": "Flat",
        "nodes": [
            {"id": "1", "label": "Root", "level": 0, "children": ["2", "3"], "connections": []},
            {"id": "2", "label": "A", "level": 1, "children": [], "connections": ["1"]},
            {"id": "3", "label": "B", "level": 1, "children": [], "connections": ["1"]},
        ],
    })
    result = parse_concept_tree(raw, "Flat")

    assert isinstance(result, ParseOk)
    assert [c.label for c in result.root.children] == ["A", "B"]


def test_parse_flat_node_list_with_cycle_falls_back():
    raw = json.dumps({
        "nodes": [
            {"id": "1", "label": "Root", "children": ["2"]},
            {"id": "2", "label": "A", "children": ["1"]},
        ],
    })
    assert isinstance(parse_concept_tree(raw, "T"), ParseFallback)


def test_parse_flat_node_list_with_shared_children_falls_back_fast():
    # every layer points at both nodes of the next layer
    layers = 40
    nodes = []
    for layer in range(layers):
        children = [f"{layer + 1}a", f"{layer + 1}b"] if layer + 1 < layers else []
        for side in "ab":
            nodes.append({"id": f"{layer}{side}", "label": f"L{layer}", "children": children})
    raw = json.dumps({"nodes": nodes})

    started = time.perf_counter()
    result = parse_concept_tree(raw, "Diamond")

    assert isinstance(result, ParseFallback)
    assert "more than one parent" in result.reason
    assert time.perf_counter() - started < 1.0


def test_parse_flat_node_chain_deeper_than_cap_falls_back():
    depth = MAX_TREE_DEPTH + 10
    nodes = [{"id": str(i), "label": f"N{i}", "children": [str(i + 1)]} for i in range(depth)]
    result = parse_concept_tree(json.dumps({"nodes": nodes}), "Chain")

    assert isinstance(result, ParseFallback)
    assert "deeper than" in result.reason


@pytest.mark.parametrize("depth", [600, 2000])
def test_parse_deeply_nested_answer_falls_back(depth):
    raw = '{"nodes": [' + '{"id": "n", "children": [' * depth + "]}" * depth + "]}"
    result = parse_concept_tree(raw, "Deep")

    assert isinstance(result, ParseFallback)
    assert "nested deeper" in result.reason


def test_parse_accepts_tree_at_depth_cap():
    depth = MAX_TREE_DEPTH
    raw = (
        '{"nodes": ['
        + "".join(f'{{"id": "{i}", "label": "N{i}", "children": [' for i in range(depth))
        + "]}" * depth
        + "]}"
    )
    result = parse_concept_tree(raw, "Deep")

    assert isinstance(result, ParseOk)


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "   ",
        "I could not produce a mind map.",
        '{"nodes": [}',
        '{"nodes": []}',
        '{"nodes": "oops"}',
        '{"nodes": [42]}',
        '{"id": "r", "children": "not a list"}',
    ],
)
def test_parse_bad_answers_fall_back(raw):
    result = parse_concept_tree(raw, "T")
    assert isinstance(result, ParseFallback)
    assert result.reason


# ── prompt ───────────────────────────────────────────────────────────────────

def test_prompt_truncates_source_and_embeds_title():
    source = "a" * 3000 + "b" * 3000
    prompt = build_mind_map_prompt(source, "Biology", char_budget=4000)

    assert "Title: Biology" in prompt
    assert "a" * 3000 + "b" * 1000 in prompt
    assert "b" * 1001 not in prompt
    assert '"children"' in prompt


# ── fallback ─────────────────────────────────────────────────────────────────

def test_fallback_map_shape():
    mind_map = fallback_mind_map("Chemistry")

    assert mind_map.title == "Chemistry"
    assert [n.level for n in mind_map.nodes] == [0, 1, 1, 1]
    assert mind_map.root.label == "Chemistry"
    assert [e.strength for e in mind_map.edges] == [0.8, 0.7, 0.6]
    assert mind_map.validate_tree() == []


# ── normalize ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_normalize_without_generation_service():
    result = await normalize_response("text", "Topic", None)

    assert result.used_fallback
    assert len(result.mind_map.nodes) == 4


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"error": ConnectionError("network down")},
        {"error": RuntimeError("All AI providers failed")},
        {"answer": ""},
        {"answer": "Sorry, no JSON today."},
        {"answer": '{"nodes": [{"id": "1", "label": '},
    ],
)
async def test_normalize_always_returns_fallback_on_failure(make_generate, kwargs):
    generate = make_generate(**kwargs)
    mind_map = await normalize("Some source text about cells.", "Cells", generate)

    roots = [n for n in mind_map.nodes if n.level == 0]
    children = [n for n in mind_map.nodes if n.level == 1]
    assert len(roots) == 1 and roots[0].label == "Cells"
    assert len(children) == 3
    assert mind_map.edges
    assert len(generate.prompts) == 1  # single attempt, no retry


@pytest.mark.asyncio
async def test_normalize_duplicate_ids_fall_back(make_generate):
    answer = json.dumps({
        "id": "1", "label": "Root",
        "children": [
            {"id": "2", "label": "A", "children": [{"id": "1", "label": "Again"}]},
        ],
    })
    result = await normalize_response("text", "Dup", make_generate(answer=answer))

    assert result.used_fallback
    assert "Duplicate" in result.reason


@pytest.mark.asyncio
async def test_normalize_success(make_generate, photosynthesis_payload):
    generate = make_generate(answer=photosynthesis_payload)
    result = await normalize_response("x" * 5000, "Photosynthesis", generate)

    assert not result.used_fallback
    mind_map = result.mind_map
    assert mind_map.title == "Photosynthesis"
    assert [n.id for n in mind_map.nodes] == ["1", "2", "4", "3", "5"]
    assert len(mind_map.edges) == 4
    assert "x" * 4001 not in generate.prompts[0]


@pytest.mark.asyncio
async def test_normalize_deeply_nested_answer_falls_back(make_generate):
    answer = '{"nodes": [' + '{"id": "n", "children": [' * 2000 + "]}" * 2000 + "]}"
    result = await normalize_response("text", "Deep", make_generate(answer=answer))

    assert result.used_fallback
    assert result.mind_map.root.label == "Deep"
