"""Validation of hand-edited roadmap JSON.

Raw text from the Add Roadmap and Edit JSON forms goes through :func:`validate`
before anything reaches the store. A failed validation leaves all state
untouched.
"""

import json

from pydantic import ValidationError

from ethereal.schemas.roadmap import Topic, data_from_wire, data_to_wire

ROOT_MUST_BE_ARRAY = "Root must be an array"
JSON_MUST_BE_ARRAY = "JSON must be an array"

EXAMPLE_TEMPLATE: list[dict[str, list[dict[str, object]]]] = [
    {
        "Example Topic": [
            {
                "subtopic_name": "Example Subtopic",
                "resource_url": "https://example.com",
                "completed": False,
            }
        ]
    }
]


class RoadmapValidationError(ValueError):
    """Raw roadmap JSON was rejected."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RoadmapSyntaxError(RoadmapValidationError):
    """The text is not valid JSON. Carries the parser message unchanged."""


class RoadmapShapeError(RoadmapValidationError):
    """The JSON parsed but is not a list of topics."""


def validate(raw_text: str, *, shape_message: str = ROOT_MUST_BE_ARRAY) -> list[Topic]:
    """Parse and check a raw roadmap body.

    Args:
        raw_text: Text typed into the form
        shape_message: Message used when the root is not an array

    Returns:
        Parsed topics, in input order

    Raises:
        RoadmapSyntaxError: If the text does not parse
        RoadmapShapeError: If the root is not an array or a topic is malformed
    """
    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError as e:
        raise RoadmapSyntaxError(str(e)) from e

    if not isinstance(parsed, list):
        raise RoadmapShapeError(shape_message)

    for index, entry in enumerate(parsed):
        try:
            Topic.model_validate(entry)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            detail = f"{location}: {first['msg']}" if location else first["msg"]
            raise RoadmapShapeError(f"Invalid topic at index {index}: {detail}") from e

    return data_from_wire(parsed)


def serialize(data: list[Topic]) -> str:
    """Indented JSON for the Edit JSON form, in the stored single-key shape."""
    return json.dumps(data_to_wire(data), indent=2, ensure_ascii=False)


def example_template() -> str:
    return json.dumps(EXAMPLE_TEMPLATE, indent=2)
