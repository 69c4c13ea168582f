"""Challenge dataset produced by the ingestion job (one record per daily target).

The bundled challenges.json is a sample for development and tests: its
image URLs are placeholders and challenge_images/ ships empty. Point
CHALLENGES_PATH and CHALLENGE_IMAGES_DIR at the ingestion job's output to
score real targets.
"""

import json
import logging
from pathlib import Path

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from config import settings

logger = logging.getLogger(__name__)


class Challenge(BaseModel):
    challenge_id: str = Field(validation_alias=AliasChoices("challengeId", "challenge_id"))
    name: str
    url: str
    month: int
    year: int
    image_url: str | None = Field(default=None, validation_alias=AliasChoices("imageUrl", "image_url"))  # remote target image
    image_file: str | None = Field(default=None, validation_alias=AliasChoices("imageFile", "image_file"))  # stored PNG name, no extension


# ---------------------------------------------------------------------------
# Challenge Loader
# ---------------------------------------------------------------------------

def load_challenges(json_path: Path | None = None) -> dict[str, Challenge]:
    """Load the challenges dictionary (keyed by challenge id) from a JSON file."""
    json_path = Path(json_path or settings.challenges_path)
    if not json_path.exists():
        logger.error(f"challenges file not found at {json_path}")
        return {}

    try:
        with open(json_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return {key: Challenge.model_validate(item) for key, item in data.items()}
    except (OSError, json.JSONDecodeError, ValidationError, AttributeError) as e:
        logger.error(f"Failed to load challenges from {json_path}: {e}")
        return {}


# Load once at startup
ALL_CHALLENGES = load_challenges()


def get_all_challenges() -> list[Challenge]:
    return list(ALL_CHALLENGES.values())


def get_challenge_by_id(challenge_id: str) -> Challenge | None:
    return ALL_CHALLENGES.get(challenge_id)


def target_image_locator(challenge: Challenge, images_dir: Path | None = None) -> str | None:
    """Where to load the challenge's target image from.

    Prefers the PNG stored by the ingestion job, then the remote image URL.
    """
    images_dir = Path(images_dir or settings.challenge_images_dir)
    if challenge.image_file:
        local_path = images_dir / f"{challenge.image_file}.png"
        if local_path.exists():
            return str(local_path)
    return challenge.image_url
