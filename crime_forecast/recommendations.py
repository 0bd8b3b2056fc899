"""
crime_forecast/recommendations.py
---------------------------------
Narrative recommendations from an OpenAI-style chat-completions
endpoint. The service is treated as an opaque text generator: the
historical and predicted series go in as JSON, markdown comes out.

generate_recommendations() never raises. With no predicted data it
returns NO_RECOMMENDATION_DATA; on any network, HTTP or response-shape
failure it prints a warning and returns RECOMMENDATION_ERROR, so the
caller can show the text and leave earlier results untouched.
request_recommendations() is the raising variant.
"""

import json

import requests

from crime_forecast.constants import (
    NO_RECOMMENDATION_DATA,
    RECOMMENDATION_ERROR,
    RECOMMENDATION_INSTRUCTIONS,
    RECOMMENDATION_MODEL,
    RECOMMENDATION_SYSTEM_PROMPT,
    RECOMMENDATION_TEMPERATURE,
    RECOMMENDATION_TIMEOUT,
    RECOMMENDATION_URL,
)
from crime_forecast.errors import ExternalServiceError


def build_prompt(summary: dict, instructions: str = RECOMMENDATION_INSTRUCTIONS) -> str:
    return (
        "Based on the following data:\n"
        f"Historical Data: {json.dumps(summary.get('historical', []))}\n"
        f"Predicted Data: {json.dumps(summary.get('predicted', []))}\n"
        f"{instructions.strip()}\n"
        "Format the response in markdown."
    )


def request_recommendations(
    summary: dict,
    api_key: str,
    url: str = RECOMMENDATION_URL,
    model: str = RECOMMENDATION_MODEL,
    temperature: float = RECOMMENDATION_TEMPERATURE,
    timeout: int = RECOMMENDATION_TIMEOUT,
) -> str:
    """
    Raises:
        ExternalServiceError: on network failure, a non-2xx status, or a
                              response without a message.
    """
    payload = {
        "model": model,
        "messages": [
            {"role": "system", "content": RECOMMENDATION_SYSTEM_PROMPT},
            {"role": "user",   "content": build_prompt(summary)},
        ],
        "temperature": temperature,
    }
    headers = {
        "Content-Type":  "application/json",
        "Authorization": f"Bearer {api_key}",
    }
    try:
        r = requests.post(url, json=payload, headers=headers, timeout=timeout)
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError) as e:
        raise ExternalServiceError(f"Recommendation request failed: {e}") from e

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as e:
        raise ExternalServiceError(f"Unexpected recommendation response: {e}") from e
    if not isinstance(content, str):
        raise ExternalServiceError("Recommendation response content is not text.")
    return content.strip()


def generate_recommendations(summary: dict, api_key: str, **kwargs) -> str:
    if not summary or not summary.get("predicted"):
        return NO_RECOMMENDATION_DATA
    try:
        return request_recommendations(summary, api_key, **kwargs)
    except ExternalServiceError as e:
        print(f"  WARNING: {e}")
        return RECOMMENDATION_ERROR
