"""Tests for static and live document contexts."""

import pytest

from storefinder.documents import LiveDocument, StaticDocument, child_frames, merge_html


class TestStaticDocument:
    """Tests for StaticDocument."""

    @pytest.mark.asyncio
    async def test_select_and_wait(self):
        doc = StaticDocument('<div class="a"></div><div class="a"></div>')

        assert len(await doc.select('.a')) == 2
        assert await doc.wait_for('.a') is True
        assert await doc.wait_for('.b') is False

    @pytest.mark.asyncio
    async def test_invalid_selector_is_empty(self):
        doc = StaticDocument('<div></div>')
        assert await doc.select('div[[[') == []

    @pytest.mark.asyncio
    async def test_snapshot_has_no_script_evaluation(self):
        doc = StaticDocument('<p>x</p>')

        assert not hasattr(doc, 'evaluate')
        assert await doc.content() == '<p>x</p>'


class TestLiveDocument:
    """Tests for LiveDocument over a fake Playwright frame."""

    @pytest.mark.asyncio
    async def test_wait_for_returns_false_on_timeout(self, fake_frame_factory):
        doc = LiveDocument(fake_frame_factory(visible=['.store']))

        assert await doc.wait_for('.store', timeout_ms=10) is True
        assert await doc.wait_for('.missing', timeout_ms=10) is False

    @pytest.mark.asyncio
    async def test_click(self, fake_frame_factory):
        frame = fake_frame_factory(visible=['button.more'])
        doc = LiveDocument(frame)

        assert await doc.click('button.more') is True
        assert await doc.click('button.gone') is False
        assert frame.clicked == ['button.more']

    @pytest.mark.asyncio
    async def test_type_text(self, fake_frame_factory):
        frame = fake_frame_factory()
        assert await LiveDocument(frame).type_text('input', 'Paris', delay_ms=0) is True
        assert frame.typed == ['Paris']


class TestFrames:
    """Tests for child_frames() and merge_html()."""

    def test_child_frames_skip_main_and_detached(self, fake_page_factory, fake_frame_factory):
        page = fake_page_factory()
        attached = fake_frame_factory(html='<p>a</p>')
        detached = fake_frame_factory()
        detached.detached = True
        page.child_frames = [attached, detached]

        assert child_frames(page) == [attached]

    def test_merge_html_markers(self):
        merged = merge_html('<main/>', ['<p>one</p>', '', '<p>three</p>'])

        assert merged.startswith('<!-- MAIN PAGE HTML -->\n<main/>')
        assert '<!-- IFRAME 0 -->\n<p>one</p>' in merged
        assert '<!-- IFRAME 1 -->' not in merged
        assert '<!-- IFRAME 2 -->\n<p>three</p>' in merged
