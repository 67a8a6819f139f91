"""Geographic sweep of a coordinate-parameterized store API.

The globe is cut into fixed-size latitude/longitude cells. Cells whose
center is open ocean are dropped, and the remaining cells are queried in
order (south to north, west to east) until the API stops returning stores.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin

import requests
from global_land_mask import globe

from storefinder.descriptors import ApiDescriptor
from storefinder.extractors.field_resolver import resolve_path
from storefinder.extractors.structured_data import find_first_object_array
from storefinder.shared.constants import HTTP, SOURCES, SWEEP, VALIDATION
from storefinder.shared.delays import rate_limit_delay
from storefinder.shared.http import create_session, get_with_retry, sanitize_url
from storefinder.shared.store_schema import StoreRecord

__all__ = [
    'ApiSweeper',
    'GridCell',
    'build_cell_url',
    'generate_grid',
    'generate_raw_grid',
    'haversine_meters',
    'is_land',
    'map_record',
]


@dataclass(frozen=True)
class GridCell:
    """One rectangular search cell."""
    sw_lat: float
    sw_lng: float
    ne_lat: float
    ne_lng: float
    center_lat: float
    center_lng: float
    radius_meters: float
    radius_km: float


def haversine_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = (math.sin(d_phi / 2) ** 2
         + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2)
    return SWEEP.EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _frange(start: float, stop: float, step: float) -> List[float]:
    values = []
    i = 0
    value = start
    while value < stop:
        values.append(value)
        i += 1
        # Multiply instead of accumulating to avoid float drift
        value = start + i * step
    return values


def generate_raw_grid(lat_step: float = SWEEP.LAT_STEP, lng_step: float = SWEEP.LNG_STEP) -> List[GridCell]:
    """Cover the globe with cells, without the land filter.

    Latitude runs over [-90, 90) and longitude over [-180, 180); north-east
    corners are clamped to 90/180. Each cell's radius is half the haversine
    length of its diagonal.

    Args:
        lat_step: Cell height in degrees (must be positive)
        lng_step: Cell width in degrees (must be positive)

    Returns:
        Cells in generation order
    """
    if lat_step <= 0 or lng_step <= 0:
        raise ValueError(f"Grid steps must be positive, got {lat_step}/{lng_step}")

    cells = []
    for lat in _frange(VALIDATION.LAT_MIN, VALIDATION.LAT_MAX, lat_step):
        for lng in _frange(VALIDATION.LON_MIN, VALIDATION.LON_MAX, lng_step):
            ne_lat = min(lat + lat_step, VALIDATION.LAT_MAX)
            ne_lng = min(lng + lng_step, VALIDATION.LON_MAX)
            radius_meters = haversine_meters(lat, lng, ne_lat, ne_lng) / 2
            cells.append(GridCell(
                sw_lat=lat,
                sw_lng=lng,
                ne_lat=ne_lat,
                ne_lng=ne_lng,
                center_lat=(lat + ne_lat) / 2,
                center_lng=(lng + ne_lng) / 2,
                radius_meters=radius_meters,
                radius_km=radius_meters / 1000,
            ))
    return cells


def is_land(lat: float, lng: float) -> bool:
    """True when the point is on land according to the global land mask."""
    return bool(globe.is_land(lat, lng))


def generate_grid(
    lat_step: float = SWEEP.LAT_STEP,
    lng_step: float = SWEEP.LNG_STEP,
    land_filter: Callable[[float, float], bool] = is_land,
) -> List[GridCell]:
    """Generate the searchable grid: raw cells whose center is on land."""
    cells = [c for c in generate_raw_grid(lat_step, lng_step) if land_filter(c.center_lat, c.center_lng)]
    logging.info(f"Generated {len(cells)} searchable land-based grid cells")
    return cells


def _format_number(value: float) -> str:
    """Render integral floats without a trailing '.0'."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def build_cell_url(template: str, cell: GridCell, distance_unit: str = 'km', base_url: str = '') -> str:
    """Substitute the cell into an API template.

    Args:
        template: API template with ``{{...}}`` placeholders
        cell: Grid cell
        distance_unit: ``km``, ``miles`` or ``meters``
        base_url: Target URL used to resolve relative templates

    Returns:
        Absolute request URL
    """
    if distance_unit == 'miles':
        distance = cell.radius_km * SWEEP.KM_TO_MILES
    elif distance_unit == 'meters':
        distance = cell.radius_meters
    else:
        distance = cell.radius_km

    replacements = {
        '{{latitude}}': _format_number(cell.center_lat),
        '{{longitude}}': _format_number(cell.center_lng),
        '{{distance}}': str(math.ceil(distance)),
        '{{sw_lat}}': _format_number(cell.sw_lat),
        '{{sw_lng}}': _format_number(cell.sw_lng),
        '{{ne_lat}}': _format_number(cell.ne_lat),
        '{{ne_lng}}': _format_number(cell.ne_lng),
    }
    url = template
    for placeholder, value in replacements.items():
        url = url.replace(placeholder, value)
    return urljoin(base_url, url) if base_url else url


def map_record(item: Dict[str, Any], mapping: Dict[str, Optional[str]]) -> Dict[str, Any]:
    """Apply a field mapping to one API record."""
    raw = {name: resolve_path(item, path) for name, path in mapping.items() if path}
    return StoreRecord.from_raw(raw, source=SOURCES.API_DYNAMIC).to_dict()


class ApiSweeper:
    """Sweep a coordinate API across the land grid.

    The field mapping is inferred once, from the first response that
    contains records, and reused for every later response. If inference
    fails the sweep stops issuing requests and yields no records.
    """

    def __init__(
        self,
        api: ApiDescriptor,
        base_url: str,
        infer_mapping: Callable[[Dict[str, Any]], Optional[Dict[str, Optional[str]]]],
        session: Optional[requests.Session] = None,
        lat_step: float = SWEEP.LAT_STEP,
        lng_step: float = SWEEP.LNG_STEP,
        max_empty_cells: int = SWEEP.MAX_EMPTY_CELLS,
        rate_limit: float = SWEEP.RATE_LIMIT_DELAY,
        timeout: float = HTTP.TIMEOUT,
        max_retries: int = HTTP.MAX_RETRIES,
        retry_delay: float = HTTP.RETRY_DELAY,
        land_filter: Callable[[float, float], bool] = is_land,
    ):
        self.api = api
        self.base_url = base_url
        self.infer_mapping = infer_mapping
        self.session = session or create_session(base_url)
        self.lat_step = lat_step
        self.lng_step = lng_step
        self.max_empty_cells = max_empty_cells
        self.rate_limit = rate_limit
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.land_filter = land_filter

        self.mapping: Optional[Dict[str, Optional[str]]] = None
        self.mapping_failed = False
        self.requests_made = 0

    def fetch_json(self, url: str) -> Optional[Any]:
        """GET ``url`` and parse JSON; None on exhausted retries or bad JSON."""
        self.requests_made += 1
        response = get_with_retry(
            self.session,
            url,
            max_retries=self.max_retries,
            timeout=self.timeout,
            retry_delay=self.retry_delay,
        )
        if response is None:
            return None
        try:
            return response.json()
        except ValueError as e:
            logging.debug(f"Non-JSON API response from {sanitize_url(url)}: {e}")
            return None

    def map_response(self, data: Any) -> List[Dict[str, Any]]:
        """Locate the record array in a response and map every item."""
        items = find_first_object_array(data) or []
        if not items or self.mapping_failed:
            return []

        if self.mapping is None:
            logging.info("First API response with records received, inferring field mapping...")
            self.mapping = self.infer_mapping(items[0])
            if not self.mapping:
                logging.warning("Could not infer API field mapping; stopping sweep")
                self.mapping = None
                self.mapping_failed = True
                return []

        logging.debug(f"Mapping {len(items)} API items")
        return [map_record(item, self.mapping) for item in items if isinstance(item, dict)]

    def direct_call(self) -> List[Dict[str, Any]]:
        """Call the API once without geographic parameters."""
        base_api_url = self.api.api_template.split('?')[0]
        url = urljoin(self.base_url, base_api_url) if self.base_url else base_api_url
        logging.info(f"Trying a direct API call without geo parameters: {sanitize_url(url)}")
        data = self.fetch_json(url)
        if data is None:
            return []
        return self.map_response(data)

    def sweep(self) -> List[Dict[str, Any]]:
        """Query every land cell until the empty-cell breaker trips."""
        cells = generate_grid(self.lat_step, self.lng_step, self.land_filter)
        stores: List[Dict[str, Any]] = []
        consecutive_empty = 0

        for i, cell in enumerate(cells):
            if self.mapping_failed:
                break
            if consecutive_empty >= self.max_empty_cells:
                logging.info(f"Stopping sweep: {consecutive_empty} consecutive empty cells")
                break

            url = build_cell_url(self.api.api_template, cell, self.api.distance_unit, self.base_url)
            if i % SWEEP.PROGRESS_INTERVAL == 0:
                logging.info(
                    f"[{i}/{len(cells)}] Sweeping near "
                    f"({cell.center_lat:.1f}, {cell.center_lng:.1f}), {len(stores)} stores so far"
                )

            data = self.fetch_json(url)
            new_stores = self.map_response(data) if data is not None else []
            if new_stores:
                consecutive_empty = 0
                stores.extend(new_stores)
            else:
                consecutive_empty += 1

            rate_limit_delay(self.rate_limit)

        logging.info(f"Coordinate sweep complete: {len(stores)} stores from {self.requests_made} requests")
        return stores

    def run(self) -> List[Dict[str, Any]]:
        """Direct call first; sweep only when it returns too few records."""
        stores = self.direct_call()
        if len(stores) > SWEEP.DIRECT_CALL_THRESHOLD:
            logging.info(f"Found {len(stores)} stores in a single API call")
            return stores
        if self.mapping_failed:
            return []

        logging.info(f"Direct call returned {len(stores)} stores, starting coordinate sweep")
        return self.sweep()
