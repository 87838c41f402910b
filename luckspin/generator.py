"""Turn a free-text event description into a candidate sector list via an LLM."""
import json
import logging
import os
import random
import time

from luckspin.errors import GeneratorError, InvalidConfiguration
from luckspin.models import sectors_from_dicts

logger = logging.getLogger(__name__)

DEFAULT_MODEL = 'gpt-4.1-mini'
PALETTE = ['#ef4444', '#f97316', '#f59e0b', '#84cc16', '#10b981', '#06b6d4',
           '#3b82f6', '#6366f1', '#8b5cf6', '#d946ef', '#f43f5e']

PROMPT_TEMPLATE = """Create a prize configuration for a lucky draw wheel based on this request: "{request}".

Rules:
1. Total probability MUST sum to exactly 100.
2. Include a mix of High Value (PHYSICAL), CURRENCY, and participation (EMPTY) prizes.
3. Generate 6 to 10 items.
4. Ensure 'probability' is a number representing percentage (e.g. 0.5 for 0.5%).

Return ONLY valid JSON of the form:
{{"prizes": [{{"name": "...", "type": "PHYSICAL|CURRENCY|EMPTY", "amount": 0,
"probability": 0.5, "icon": "Smartphone|Coins|Watch|Gift|Bike|Car|Smile"}}]}}
"""


def _make_client():
    if not os.getenv("OPENAI_API_KEY"):
        raise GeneratorError("API Key not found")
    import openai
    return openai.OpenAI()


def _strip_fences(text):
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1].rsplit("```", 1)[0]
    return text


def generate_sectors(prompt, client=None, model=None, rng=None):
    """
    Ask the model for a prize list and return it as Sector objects. The result
    is only a candidate: it goes live through the normal sector replacement.
    """
    if not prompt or not prompt.strip():
        raise GeneratorError("Prompt must not be empty")

    client = client or _make_client()
    rng = rng or random
    model = model or os.getenv("LUCKSPIN_LLM_MODEL", DEFAULT_MODEL)

    try:
        resp = client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": PROMPT_TEMPLATE.format(request=prompt.strip())}],
            response_format={"type": "json_object"},
            temperature=0.7,
        )
        raw = resp.choices[0].message.content
        if not raw:
            raise GeneratorError("No data returned")
        parsed = json.loads(_strip_fences(raw))
    except GeneratorError:
        raise
    except Exception as e:
        logger.error(f"💥 Prize generation error: {e}")
        raise GeneratorError(f"Failed to generate prizes: {e}") from e

    items = parsed.get('prizes') if isinstance(parsed, dict) else parsed
    if not isinstance(items, list) or not items:
        raise GeneratorError("Generator returned no prizes")

    stamp = int(time.time() * 1000)
    candidates = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise GeneratorError(f"Generated item {index} is not an object")
        candidates.append({
            'id': f"gen-{stamp}-{index}",
            'name': item.get('name'),
            'type': item.get('type'),
            'amount': item.get('amount') or 0,
            'probability': item.get('probability'),
            'color': rng.choice(PALETTE),
            'icon': item.get('icon'),
        })

    try:
        sectors = sectors_from_dicts(candidates)
    except InvalidConfiguration as e:
        raise GeneratorError(f"Generated configuration rejected: {e}") from e

    logger.info(f"✨ Generated {len(sectors)} candidate sectors")
    return sectors
