import json
from typing import Callable, List

import pytest

from studymap.schemas.mindmap import ConceptNode


@pytest.fixture
def binary_tree() -> ConceptNode:
    """Depth-3 tree, branching factor 2: 7 nodes."""
    return ConceptNode(
        id="root",
        label="Root",
        children=[
            ConceptNode(
                id="a",
                label="A",
                children=[ConceptNode(id="a1", label="A1"), ConceptNode(id="a2", label="A2")],
            ),
            ConceptNode(
                id="b",
                label="B",
                children=[ConceptNode(id="b1", label="B1"), ConceptNode(id="b2", label="B2")],
            ),
        ],
    )


@pytest.fixture
def photosynthesis_payload() -> str:
    """Model answer with prose around the JSON: root, 2 children, 1 grandchild each."""
    body = {
        "nodes": [
            {
                "id": "1",
                "label": "Photosynthesis",
                "summary": "How plants turn light into chemical energy.",
                "children": [
                    {
                        "id": "2",
                        "label": "Light Reactions",
                        "summary": "Capture light energy {in thylakoids}.",
                        "children": [
                            {"id": "4", "label": "Photosystem II", "summary": "Splits water.", "children": []}
                        ],
                    },
                    {
                        "id": "3",
                        "label": "Calvin Cycle",
                        "summary": "Fixes carbon dioxide.",
                        "children": [
                            {"id": "5", "label": "RuBisCO", "summary": "Carbon-fixing enzyme."}
                        ],
                    },
                ],
            }
        ]
    }
    return "Here is your mind map:\n```json\n" + json.dumps(body) + "\n```\nLet me know {if} you need more."


@pytest.fixture
def make_generate() -> Callable:
    """Build an async generation function returning ``answer`` and recording prompts."""

    def factory(answer: str = "", error: Exception = None):
        prompts: List[str] = []

        async def generate(prompt: str) -> str:
            prompts.append(prompt)
            if error is not None:
                raise error
            return answer

        generate.prompts = prompts
        return generate

    return factory
