"""Pipeline orchestrator: from a target URL to persisted store records.

Phases run strictly in order:

1. Document acquisition (with one retry on redirect or load failure)
2. Context assembly (main page + iframes, merged HTML)
3. Pattern detection (click through an initial gate and re-detect once)
4. Multi-source extraction (static, live, JSON-LD, inline scripts)
5. Interactive expansion ("show more" clicks, search probes)
6. API fallback (coordinate API sweep)
7. Normalization and persistence

Later phases always run even when an earlier phase degraded; only failing
to load the target document at all aborts the run.
"""

import asyncio
import concurrent.futures
import functools
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from config.scraper_config import ScraperConfig
from storefinder.browser import ResponseRecorder, create_browser_session
from storefinder.descriptors import PatternDescriptor
from storefinder.documents import LiveDocument, child_frames, merge_html
from storefinder.extractors.pattern_extractor import extract_live, extract_static
from storefinder.extractors.structured_data import extract_inline_scripts, extract_json_ld
from storefinder.geo_sweep import ApiSweeper
from storefinder.oracle import PatternOracle
from storefinder.shared.constants import PIPELINE
from storefinder.shared.export_service import save_html_snapshot, save_run_output
from storefinder.shared.store_processing import (
    calculate_stats,
    deduplicate,
    normalize_stores,
    pre_filter,
)

__all__ = [
    'ContextSnapshot',
    'RunResult',
    'StoreLocatorPipeline',
]


# Oracle round-trips and the sweep are blocking requests calls
_oracle_executor = concurrent.futures.ThreadPoolExecutor(max_workers=2, thread_name_prefix='storefinder')


@dataclass
class RunResult:
    """Outcome of one pipeline run."""
    success: bool
    message: str
    url: str
    stores: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)
    output_dir: Optional[Path] = None


@dataclass
class ContextSnapshot:
    """Document contexts and their HTML captured at one point in time.

    ``html[i]`` is the HTML of ``contexts[i]``; ``merged_html`` is the
    marker-separated concatenation used for pattern detection.
    """
    contexts: List[LiveDocument]
    html: List[str]
    merged_html: str


def _same_target(current_url: str, target_url: str) -> bool:
    return (current_url or '').rstrip('/') == (target_url or '').rstrip('/')


class StoreLocatorPipeline:
    """Runs every phase for one target URL.

    Args:
        config: Resolved run configuration
        oracle: Pattern oracle (built from config when omitted)
        browser_factory: Async context manager factory yielding an object with
            ``page`` and ``recorder`` attributes
        executor: Thread pool used for blocking oracle and sweep calls
    """

    def __init__(
        self,
        config: ScraperConfig,
        oracle: Optional[PatternOracle] = None,
        browser_factory: Callable = create_browser_session,
        executor: Optional[concurrent.futures.Executor] = None,
    ):
        self.config = config
        self.oracle = oracle or PatternOracle(
            endpoint=config.llm_endpoint,
            model=config.llm_model,
            timeout=config.request_timeout,
            max_retries=config.retry_count,
            retry_delay=config.retry_delay,
        )
        self.browser_factory = browser_factory
        self.executor = executor or _oracle_executor
        self.url = ''

    async def _call_blocking(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, functools.partial(func, *args, **kwargs))

    def _snapshot(self, html: str, suffix: str) -> None:
        if self.config.save_html:
            save_html_snapshot(html, self.url, suffix, self.config.output_dir)

    # ------------------------------------------------------------------
    # Phase 1: document acquisition
    # ------------------------------------------------------------------

    async def _goto(self, page: Page, url: str) -> None:
        await page.goto(url, wait_until='networkidle', timeout=int(self.config.page_timeout * 1000))

    async def acquire_document(self, page: Page, url: str) -> Optional[str]:
        """Load the target; returns an error message only when it cannot be loaded."""
        logging.info(f"Loading page: {url}")
        try:
            await self._goto(page, url)
            await asyncio.sleep(PIPELINE.LOAD_SETTLE)
        except PlaywrightError as e:
            logging.warning(f"Page load failed ({e}), retrying once")
            try:
                await self._goto(page, url)
                await asyncio.sleep(PIPELINE.RELOAD_SETTLE)
            except PlaywrightError as retry_error:
                return f"Failed to load {url}: {retry_error}"
            return None

        if not _same_target(page.url, url):
            logging.warning(f"Detected redirect: landed on {page.url} instead of {url}, re-accessing target")
            try:
                await self._goto(page, url)
                await asyncio.sleep(PIPELINE.RELOAD_SETTLE)
            except PlaywrightError as e:
                logging.warning(f"Re-accessing target after redirect failed: {e}")
        return None

    # ------------------------------------------------------------------
    # Phase 2: context assembly
    # ------------------------------------------------------------------

    async def assemble_contexts(self, page: Page, label: str = 'main') -> ContextSnapshot:
        """Capture a fresh list of main + iframe contexts with their HTML."""
        main = LiveDocument(page, 'main page')
        main_html = await main.content()
        self._snapshot(main_html, label)

        contexts = [main]
        html = [main_html]
        iframe_html = []
        for idx, frame in enumerate(child_frames(page)):
            document = LiveDocument(frame, f'iframe {idx}')
            if not await document.wait_for_body():
                continue
            await asyncio.sleep(PIPELINE.IFRAME_SETTLE)
            frame_html = await document.content()
            if not frame_html:
                continue
            contexts.append(document)
            html.append(frame_html)
            iframe_html.append(frame_html)
            self._snapshot(frame_html, f'{label}_iframe_{idx}')

        logging.info(
            f"Context assembly: main page ({len(main_html) / 1024:.1f} KB) + {len(iframe_html)} iframes"
        )
        return ContextSnapshot(contexts=contexts, html=html, merged_html=merge_html(main_html, iframe_html))

    # ------------------------------------------------------------------
    # Phase 3: pattern detection
    # ------------------------------------------------------------------

    async def detect_pattern(self, html: str) -> PatternDescriptor:
        return await self._call_blocking(self.oracle.detect_html_pattern, html)

    async def pass_initial_gate(self, page: Page, snapshot: ContextSnapshot, pattern: PatternDescriptor):
        """Click through a gate (country chooser, modal) and re-detect once.

        Returns:
            (snapshot, pattern) to extract with; the inputs when the gate
            could not be passed
        """
        selector = pattern.initial_button_selector
        logging.info(f"Initial gate detected, clicking {selector!r}")
        main = snapshot.contexts[0]
        if not await main.click(selector):
            logging.warning("Initial gate click failed, continuing with current page")
            return snapshot, pattern

        await asyncio.sleep(PIPELINE.LOAD_SETTLE)
        try:
            await self._goto(page, self.url)
            await asyncio.sleep(PIPELINE.LOAD_SETTLE)
        except PlaywrightError as e:
            logging.warning(f"Reload after initial gate failed: {e}")

        snapshot = await self.assemble_contexts(page, label='after_gate')
        pattern = await self.detect_pattern(snapshot.merged_html)
        return snapshot, pattern

    # ------------------------------------------------------------------
    # Phase 4: multi-source extraction
    # ------------------------------------------------------------------

    async def extract_context(self, context: LiveDocument, html: str, pattern: PatternDescriptor) -> List[Dict[str, Any]]:
        """Static + live pattern extraction for one context."""
        stores = extract_static(html, pattern)
        stores.extend(await extract_live(context, pattern))
        return stores

    async def extract_with_pattern(self, snapshot: ContextSnapshot, pattern: PatternDescriptor) -> List[Dict[str, Any]]:
        results = await asyncio.gather(*(
            self.extract_context(context, html, pattern)
            for context, html in zip(snapshot.contexts, snapshot.html)
        ))
        stores = []
        for result in results:
            stores.extend(result)
        return stores

    async def extract_all(self, snapshot: ContextSnapshot, pattern: PatternDescriptor) -> List[Dict[str, Any]]:
        """Every extractor over every context of a snapshot."""
        stores = await self.extract_with_pattern(snapshot, pattern)
        for html in snapshot.html:
            stores.extend(extract_json_ld(html))
        stores.extend(extract_inline_scripts(snapshot.merged_html))
        return stores

    # ------------------------------------------------------------------
    # Phase 5: interactive expansion
    # ------------------------------------------------------------------

    async def expand_show_more(self, page: Page, pattern: PatternDescriptor):
        """Click "show more" in every context and re-extract.

        Returns:
            (stores, pattern); the pattern is re-detected for a context that
            hit the click cap
        """
        selector = pattern.show_more_selector
        logging.info(f"Show-more button detected ({selector!r}), expanding...")
        snapshot = await self.assemble_contexts(page, label='show_more')
        stores: List[Dict[str, Any]] = []

        for context in snapshot.contexts:
            clicks = 0
            while clicks < PIPELINE.MAX_SHOW_MORE_CLICKS:
                if not await context.wait_for(selector, PIPELINE.SHOW_MORE_WAIT_MS):
                    break
                if not await context.click(selector):
                    break
                clicks += 1
                logging.debug(f"Show-more click #{clicks} in {context.label}")
                await asyncio.sleep(PIPELINE.CLICK_SETTLE)

            if clicks == 0:
                continue
            logging.info(f"Show-more stopped after {clicks} clicks in {context.label}")

            html = await context.content()
            if clicks >= PIPELINE.MAX_SHOW_MORE_CLICKS:
                pattern = pattern.merged_with(await self.detect_pattern(html))
            stores.extend(await self.extract_context(context, html, pattern))

        return stores, pattern

    async def probe_search(self, page: Page, pattern: PatternDescriptor, query: str):
        """Type ``query`` into the search box, re-detect and re-extract.

        Returns:
            (stores, pattern)
        """
        snapshot = await self.assemble_contexts(page, label='search')
        searched = False
        for context in snapshot.contexts:
            if not await context.select(pattern.search_input_selector):
                continue
            if not await context.select(pattern.search_button_selector):
                continue
            if await context.type_text(pattern.search_input_selector, query) and \
                    await context.click(pattern.search_button_selector, scroll=False):
                searched = True
                break

        if not searched:
            logging.warning(f"Search input or button not usable, skipping probe for {query!r}")
            return [], pattern

        logging.info(f"Searched for {query!r}")
        await asyncio.sleep(PIPELINE.SEARCH_SETTLE)

        label = f"search_{query.lower().replace(' ', '_')}"
        probe = await self.assemble_contexts(page, label=label)
        probe_pattern = await self.detect_pattern(probe.merged_html)
        stores = await self.extract_all(probe, probe_pattern)
        logging.info(f"Found {len(stores)} candidates after searching for {query!r}")
        return stores, pattern.merged_with(probe_pattern)

    # ------------------------------------------------------------------
    # Phase 6: API fallback
    # ------------------------------------------------------------------

    async def api_fallback(self, recorder: ResponseRecorder) -> List[Dict[str, Any]]:
        await recorder.drain()
        api = await self._call_blocking(self.oracle.detect_coordinate_api, recorder.responses, self.url)
        if api is None:
            logging.info("No coordinate-based API detected")
            return []

        sweeper = ApiSweeper(
            api,
            self.url,
            self.oracle.detect_field_mapping,
            lat_step=self.config.grid_lat_step,
            lng_step=self.config.grid_lng_step,
            max_empty_cells=self.config.max_empty_cells,
            rate_limit=self.config.rate_limit_delay,
            timeout=self.config.request_timeout,
            max_retries=self.config.retry_count,
            retry_delay=self.config.retry_delay,
        )
        return await self._call_blocking(sweeper.run)

    # ------------------------------------------------------------------
    # Phase 7: normalization
    # ------------------------------------------------------------------

    async def finalize(self, candidates: List[Dict[str, Any]]) -> RunResult:
        """Filter, deduplicate, optionally clean, and persist."""
        stores = deduplicate(pre_filter(normalize_stores(candidates)))

        if self.config.use_llm_enhancement and stores:
            enhanced = await self._call_blocking(self.oracle.enhance, stores, self.config.batch_size)
            stores = deduplicate(pre_filter(normalize_stores(enhanced)))

        stats = calculate_stats(stores)
        output_dir = save_run_output(stores, self.url, stats, self.config.output_dir)
        logging.info(
            f"Run complete: {stats['total']} stores, {stats['with_coordinates']} with coordinates, "
            f"by source {stats['by_source']}"
        )
        return RunResult(
            success=True,
            message=f"Found {stats['total']} stores",
            url=self.url,
            stores=stores,
            stats=stats,
            output_dir=output_dir,
        )

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def scrape(self, page: Page, recorder: ResponseRecorder, url: str) -> RunResult:
        """Run every phase against an already-open page."""
        self.url = url

        error = await self.acquire_document(page, url)
        if error:
            logging.error(error)
            return RunResult(success=False, message=error, url=url)

        snapshot = await self.assemble_contexts(page)
        pattern = await self.detect_pattern(snapshot.merged_html)
        if pattern.initial_button_selector:
            snapshot, pattern = await self.pass_initial_gate(page, snapshot, pattern)

        candidates = await self.extract_all(snapshot, pattern)
        logging.info(f"Multi-source extraction: {len(candidates)} candidates")

        if len(candidates) < PIPELINE.SUFFICIENT_STORES:
            if pattern.show_more_selector:
                stores, pattern = await self.expand_show_more(page, pattern)
                candidates.extend(stores)
            if pattern.has_search and len(candidates) < PIPELINE.SUFFICIENT_STORES:
                for query in PIPELINE.SEARCH_PROBES:
                    stores, pattern = await self.probe_search(page, pattern, query)
                    candidates.extend(stores)
        else:
            logging.info("Sufficient candidates found, skipping interactive expansion")

        if len(candidates) < PIPELINE.SUFFICIENT_STORES:
            candidates.extend(await self.api_fallback(recorder))
        else:
            logging.info("Sufficient candidates found, skipping API fallback")

        return await self.finalize(candidates)

    async def run(self, url: str) -> RunResult:
        """Open a browser, scrape ``url`` and always close the browser.

        Unexpected errors are reported as a failed RunResult, never raised.
        """
        logging.info(f"Store finder started for {url}")
        try:
            async with self.browser_factory(
                headless=self.config.headless,
                page_timeout=self.config.page_timeout,
            ) as browser:
                return await self.scrape(browser.page, browser.recorder, url)
        except Exception as e:
            logging.exception(f"Unrecoverable error while scraping {url}")
            return RunResult(success=False, message=str(e), url=url)
