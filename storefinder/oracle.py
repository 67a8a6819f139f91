"""Language-model oracle used to infer selectors, APIs and field mappings.

The oracle is an OpenAI-compatible chat endpoint called over HTTP. Its
answers are untrusted: every reply is parsed defensively and validated by
the descriptor constructors, and every failure degrades to a neutral value
(fallback pattern, no API, no mapping, uncleaned batch).
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

import requests

from storefinder.descriptors import (
    MAPPED_FIELDS,
    ApiDescriptor,
    PatternDescriptor,
    parse_field_mapping,
)
from storefinder.shared.constants import HTTP, ORACLE
from storefinder.shared.http import create_session, post_with_retry

__all__ = [
    'PatternOracle',
    'extract_message_content',
    'parse_json_payload',
]


_FENCED_JSON = re.compile(r'```json\n?([\s\S]*?)\n?```')


PATTERN_SYSTEM_PROMPT = """You are an expert at analyzing HTML. Be exact. Identify data extraction patterns and return JSON with the following keys:
- "itemSelector": CSS selector matching one element per store
- "fields": selectors for name, address, city, state, postal_code, country, phone, email, url, latitude, longitude.
  Use "selector@attribute" to read an attribute and "@attribute" for an attribute of the item itself.
- "pagination": object with "type" and "nextSelector"
- "showMoreSelector": a single CSS selector for a "Show more" / "Load more" / "Voir plus" button that matches exactly one button element
- "searchInputSelector": the location search input
- "searchButtonSelector": the location search submit button
- "initialButtonSelector": any initial "choose country" or modal button that must be clicked before the store list loads
Do not use unsupported pseudo-selectors like :has(...) or :contains(...).
Keep selectors minimal."""

PATTERN_USER_PROMPT = """Analyze the following HTML, which may contain a main page and embedded iframes, and identify the CSS selectors for extracting store data. The store list is most likely inside the iframe content if it exists. Return valid JSON.

If a class name or ID literally contains a character that has meaning in CSS (such as '+', '/', ':' or '.'), escape it with a leading backslash. For example <div class="item+new"> is selected with '.item\\\\+new'.

HTML to analyze:
{html}"""

API_SYSTEM_PROMPT = 'You are an API expert. Identify coordinate-based search endpoints and return JSON.'

API_USER_PROMPT = """Analyze these API endpoints to find the best store/location search API that accepts geographic coordinates.
The goal is a template URL that can be used to sweep a map for all store locations.

Look for parameters like:
- Center point: latitude, longitude, lat, lng, lon, center, point
- Search radius: radius, distance, range (note the unit: km, miles or meters)
- Bounding box: bbox, bounds, ne_lat, sw_lng, north, south, east, west

Return a JSON object:
{{
  "hasCoordinateAPI": true,
  "apiTemplate": "THE_FULL_URL_WITH_PLACEHOLDERS",
  "searchType": "radius" or "bbox",
  "distanceUnit": "km", "miles" or "meters"
}}

Placeholders:
- radius search: {{{{latitude}}}}, {{{{longitude}}}}, {{{{distance}}}}
- bounding box search: {{{{sw_lat}}}}, {{{{sw_lng}}}}, {{{{ne_lat}}}}, {{{{ne_lng}}}}

If no suitable coordinate-based API is found, return {{"hasCoordinateAPI": false}}.
Do not add parameters to a URL that did not originally have them.

API endpoints to analyze:
{responses}

Base URL of the website: {base_url}"""

MAPPING_SYSTEM_PROMPT = 'You are an expert in JSON data mapping. Return only a valid JSON object.'

MAPPING_USER_PROMPT = """Based on this sample JSON object for a single store, create a mapping to extract the specified fields. Use dot notation for nested properties and numeric segments for list indexes.

Sample JSON object:
{sample}

Return a JSON object whose keys are the desired field names and whose values are paths in the sample object.
Desired fields: {fields}.
If a field is not present in the sample, its value must be null.

Example response:
{{"name": "name", "address": "streetaddress", "city": "address.city", "latitude": "loc_lat", "longitude": "loc_long", "state": null}}"""

CLEANING_SYSTEM_PROMPT = 'You are a data cleaning expert. Return only a valid JSON array.'

CLEANING_USER_PROMPT = """Clean and standardize this JSON array of store records. Fix formatting, validate data and remove duplicates. Preserve all valid stores and keep the same keys. Return only the cleaned JSON array.

Stores: {stores}"""


def extract_message_content(payload: Any) -> Optional[str]:
    """Pull the assistant text out of a chat-completions envelope.

    Falls back to the payload itself (re-serialized when it is not a string)
    when there is no ``choices[0].message.content``.
    """
    if isinstance(payload, dict):
        try:
            content = payload['choices'][0]['message']['content']
            if content:
                return content if isinstance(content, str) else json.dumps(content)
        except (KeyError, IndexError, TypeError):
            pass
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload
    return json.dumps(payload)


def parse_json_payload(content: Optional[str]) -> Optional[Any]:
    """Parse oracle text as JSON.

    The first fenced ```json block wins; otherwise the whole text is parsed.

    Returns:
        Parsed JSON value, or None when nothing parses
    """
    if not content:
        return None
    match = _FENCED_JSON.search(content)
    candidate = match.group(1) if match else content
    try:
        return json.loads(candidate.strip())
    except (json.JSONDecodeError, TypeError) as e:
        logging.debug(f"Oracle reply is not valid JSON: {e}")
        return None


def _preview(data: Any) -> str:
    if isinstance(data, str):
        return data[:ORACLE.TEXT_PREVIEW_SIZE]
    return json.dumps(data, ensure_ascii=False)[:ORACLE.JSON_PREVIEW_SIZE]


class PatternOracle:
    """Client for the language-model oracle.

    All methods are blocking (they use requests) and are meant to be called
    from a worker thread by the async pipeline.
    """

    def __init__(
        self,
        endpoint: str = ORACLE.ENDPOINT,
        model: str = ORACLE.MODEL,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP.TIMEOUT,
        max_retries: int = HTTP.MAX_RETRIES,
        retry_delay: float = HTTP.RETRY_DELAY,
        html_sample_size: int = ORACLE.HTML_SAMPLE_SIZE,
    ):
        self.endpoint = endpoint
        self.model = model
        self.session = session or create_session()
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.html_sample_size = html_sample_size

    def _chat(self, system_prompt: str, user_prompt: str, temperature: float) -> Optional[Any]:
        """Send one chat request and return the parsed JSON answer (or None)."""
        payload = {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': user_prompt},
            ],
            'temperature': temperature,
        }
        response = post_with_retry(
            self.session,
            self.endpoint,
            payload,
            max_retries=self.max_retries,
            timeout=self.timeout,
            retry_delay=self.retry_delay,
        )
        if response is None:
            return None

        try:
            body = response.json()
        except ValueError:
            body = response.text
        return parse_json_payload(extract_message_content(body))

    def detect_html_pattern(self, html: str) -> PatternDescriptor:
        """Ask the oracle for a pattern descriptor for ``html``.

        Returns:
            The validated descriptor, or PatternDescriptor.fallback() when the
            HTML is empty or the oracle fails
        """
        if not html:
            logging.warning("HTML content is empty, using fallback pattern")
            return PatternDescriptor.fallback()

        logging.info("Detecting HTML pattern with the oracle...")
        sample = html[:self.html_sample_size]
        answer = self._chat(
            PATTERN_SYSTEM_PROMPT,
            PATTERN_USER_PROMPT.format(html=sample),
            ORACLE.PATTERN_TEMPERATURE,
        )
        if not isinstance(answer, dict):
            logging.warning("HTML pattern detection failed, using fallback pattern")
            return PatternDescriptor.fallback()

        pattern = PatternDescriptor.from_dict(answer)
        logging.info(f"HTML pattern detected: item selector {pattern.item_selector!r}")
        logging.debug(f"Pattern: {pattern}")
        return pattern

    def detect_coordinate_api(self, responses: List[Dict[str, Any]], base_url: str) -> Optional[ApiDescriptor]:
        """Ask the oracle whether any recorded response is a coordinate API.

        Args:
            responses: Recorded network responses (``url`` and ``data`` keys)
            base_url: Target URL

        Returns:
            ApiDescriptor, or None when no coordinate API was identified
        """
        if not responses:
            return None

        relevant = [
            {'url': r.get('url', ''), 'preview': _preview(r.get('data'))}
            for r in responses[:ORACLE.MAX_API_RESPONSES]
        ]
        logging.info(f"Analyzing {len(relevant)} API responses for coordinate patterns...")
        prompt = API_USER_PROMPT.format(
            responses=json.dumps(relevant, indent=2, ensure_ascii=False),
            base_url=base_url,
        )
        logging.debug(f"API detection prompt:\n{prompt}")

        descriptor = ApiDescriptor.from_dict(
            self._chat(API_SYSTEM_PROMPT, prompt, ORACLE.API_TEMPERATURE)
        )
        if descriptor:
            logging.info(f"Coordinate API detected: {descriptor.api_template}")
        else:
            logging.info("No coordinate API detected")
        return descriptor

    def detect_field_mapping(self, sample: Dict[str, Any]) -> Optional[Dict[str, Optional[str]]]:
        """Ask the oracle for canonical field -> dotted path mapping of ``sample``."""
        logging.info("Detecting API field mapping from sample record...")
        prompt = MAPPING_USER_PROMPT.format(
            sample=json.dumps(sample, indent=2, ensure_ascii=False),
            fields=', '.join(f'"{name}"' for name in MAPPED_FIELDS),
        )
        logging.debug(f"Field mapping prompt:\n{prompt}")

        mapping = parse_field_mapping(
            self._chat(MAPPING_SYSTEM_PROMPT, prompt, ORACLE.MAPPING_TEMPERATURE)
        )
        if mapping is None:
            logging.warning("API field mapping detection failed")
        else:
            logging.info(f"API field mapping detected: {mapping}")
        return mapping

    def clean_batch(self, batch: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Ask the oracle to clean a batch of records.

        Returns:
            The cleaned records, or ``batch`` unchanged when the oracle fails
            or does not answer with a list of objects
        """
        if not batch:
            return []
        answer = self._chat(
            CLEANING_SYSTEM_PROMPT,
            CLEANING_USER_PROMPT.format(stores=json.dumps(batch, ensure_ascii=False)),
            ORACLE.CLEANING_TEMPERATURE,
        )
        if not isinstance(answer, list) or not all(isinstance(item, dict) for item in answer):
            logging.warning(f"Cleaning failed for a batch of {len(batch)} stores, keeping originals")
            return batch
        return answer

    def enhance(self, stores: List[Dict[str, Any]], batch_size: int) -> List[Dict[str, Any]]:
        """Clean ``stores`` in batches of ``batch_size`` records."""
        logging.info(f"Enhancing {len(stores)} stores with oracle cleaning...")
        batch_size = max(1, batch_size)
        enhanced = []
        for start in range(0, len(stores), batch_size):
            enhanced.extend(self.clean_batch(stores[start:start + batch_size]))
        logging.info(f"Enhancement complete: {len(stores)} -> {len(enhanced)} stores")
        return enhanced
