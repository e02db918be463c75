"""YouTube transcript and metadata extraction."""

import html
import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from docchat.core.exceptions import ExtractionError, InvalidSourceError, TranscriptUnavailableError
from docchat.models.document import DocumentMetadata, ExtractedContent
from docchat.services.fetcher import PageFetcher, parse_html

logger = logging.getLogger(__name__)

WATCH_URL = "https://www.youtube.com/watch"

_VIDEO_ID_RE = re.compile(
    r"(?:youtu\.be/|youtube(?:-nocookie)?\.com/"
    r"(?:watch\?(?:[^#]*&)?v=|embed/|v/|e/|shorts/|live/))"
    r"(?P<id>[A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"
)
_ISO_DURATION_RE = re.compile(
    r"P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?"
)
_CAPTION_TRACKS_KEY = '"captionTracks":'


def extract_video_id(url: str) -> str:
    """
    Pull the 11-character video id out of a YouTube URL.

    Accepts watch, youtu.be, embed, shorts, live and /v/ links.

    Raises:
        InvalidSourceError: If no valid id is present.
    """
    match = _VIDEO_ID_RE.search(url.strip())
    if not match:
        raise InvalidSourceError("Invalid YouTube URL")
    return match.group("id")


def parse_iso_duration(value: Optional[str]) -> Optional[float]:
    """Convert an ISO-8601 duration such as ``PT1H2M3S`` to seconds."""
    if not value:
        return None
    match = _ISO_DURATION_RE.fullmatch(value.strip())
    if not match or not any(match.groupdict().values()):
        return None
    parts = {k: float(v) if v else 0.0 for k, v in match.groupdict().items()}
    return parts["days"] * 86400 + parts["hours"] * 3600 + parts["minutes"] * 60 + parts["seconds"]


class TranscriptSegment(BaseModel):
    """One caption cue."""

    text: str
    start: float = 0.0
    duration: float = 0.0

    @property
    def end(self) -> float:
        return self.start + self.duration


class VideoPage(BaseModel):
    """Whatever could be scraped from a watch page."""

    title: Optional[str] = None
    channel: Optional[str] = None
    description: Optional[str] = None
    duration: Optional[float] = None
    caption_tracks: List[Dict[str, Any]] = Field(default_factory=list)


def parse_caption_tracks(page_html: str) -> List[Dict[str, Any]]:
    """Read the caption track list embedded in the watch page's player response."""
    idx = page_html.find(_CAPTION_TRACKS_KEY)
    if idx == -1:
        return []
    start = page_html.find("[", idx)
    if start == -1:
        return []
    try:
        tracks, _ = json.JSONDecoder().raw_decode(page_html, start)
    except json.JSONDecodeError:
        logger.warning("Malformed captionTracks in watch page")
        return []
    return [track for track in tracks if isinstance(track, dict) and track.get("baseUrl")]


def choose_caption_track(tracks: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Prefer manual English captions, then generated English ones, then the first track."""
    if not tracks:
        return None
    english = [t for t in tracks if str(t.get("languageCode", "")).startswith("en")]
    for track in english:
        if track.get("kind") != "asr":
            return track
    if english:
        return english[0]
    return tracks[0]


def parse_timedtext(xml: str) -> List[TranscriptSegment]:
    """Parse the timed-text XML format into segments."""
    soup = parse_html(xml)
    segments = []
    for node in soup.find_all("text"):
        text = html.unescape(node.get_text()).replace("\n", " ").strip()
        if not text:
            continue
        segments.append(
            TranscriptSegment(
                text=text,
                start=float(node.get("start") or 0),
                duration=float(node.get("dur") or 0),
            )
        )
    return segments


def parse_video_page(page_html: str) -> VideoPage:
    """Scrape title, channel, description and duration from a watch page."""
    soup = parse_html(page_html)

    def meta(**attrs: str) -> Optional[str]:
        tag = soup.find("meta", attrs=attrs)
        content = tag.get("content") if tag else None
        return content.strip() if content else None

    title = meta(property="og:title") or meta(name="title")
    if not title and soup.title:
        title = soup.title.get_text(strip=True)
    if title:
        title = re.sub(r"\s+-\s+YouTube$", "", title).strip()
        if title == "YouTube":
            title = None

    channel = None
    author = soup.find(attrs={"itemprop": "author"})
    if author:
        name = author.find(attrs={"itemprop": "name"})
        if name and name.get("content"):
            channel = name["content"].strip()

    return VideoPage(
        title=title or None,
        channel=channel,
        description=meta(property="og:description") or meta(name="description"),
        duration=parse_iso_duration(meta(itemprop="duration")),
        caption_tracks=parse_caption_tracks(page_html),
    )


class YouTubeService:
    """Turns a YouTube link into a transcript document."""

    def __init__(self, fetcher: PageFetcher) -> None:
        self.fetcher = fetcher

    async def fetch_page(self, video_id: str) -> VideoPage:
        page_html = await self.fetcher.get_text(WATCH_URL, params={"v": video_id})
        return parse_video_page(page_html)

    async def fetch_transcript(self, page: VideoPage) -> List[TranscriptSegment]:
        """
        Download the preferred caption track.

        Raises:
            TranscriptUnavailableError: If the video has no usable captions.
        """
        track = choose_caption_track(page.caption_tracks)
        if track is None:
            raise TranscriptUnavailableError("No caption tracks available")
        xml = await self.fetcher.get_text(track["baseUrl"])
        segments = parse_timedtext(xml)
        if not segments:
            raise TranscriptUnavailableError("Caption track is empty")
        return segments

    async def extract(self, url: str, title: Optional[str] = None) -> ExtractedContent:
        """
        Extract a video's transcript and metadata.

        A video whose captions cannot be fetched still yields a document,
        built from its title and description and flagged
        ``hasTranscript: false``.

        Raises:
            InvalidSourceError: If the URL carries no valid video id.
        """
        video_id = extract_video_id(url)

        try:
            page = await self.fetch_page(video_id)
        except ExtractionError as e:
            logger.warning(f"Could not load watch page for {video_id}: {str(e)}")
            page = VideoPage()

        segments: List[TranscriptSegment] = []
        try:
            segments = await self.fetch_transcript(page)
        except ExtractionError as e:
            logger.warning(f"Transcript unavailable for {video_id}: {str(e)}")

        resolved_title = title or page.title or f"YouTube Video ({video_id})"
        metadata = DocumentMetadata(
            url=url,
            video_id=video_id,
            platform="youtube",
            channel=page.channel,
            has_transcript=bool(segments),
        )

        if segments:
            text = re.sub(r"\s+", " ", " ".join(s.text for s in segments)).strip()
            metadata.transcript_length = len(segments)
            metadata.duration = page.duration or segments[-1].end
            logger.info(f"Fetched transcript for {video_id}: {len(segments)} segments")
        else:
            parts = [resolved_title]
            if page.description:
                parts.append(page.description)
            parts.append("[Transcript unavailable for this video]")
            text = "\n\n".join(parts)
            metadata.duration = page.duration

        return ExtractedContent(title=resolved_title, text=text, metadata=metadata)
