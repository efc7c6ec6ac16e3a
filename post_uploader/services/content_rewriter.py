"""Rewrites placeholder media references in post markup once uploads finish."""

from __future__ import annotations

import html
import json
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Callable, Iterable, Iterator, Sequence
from urllib.parse import unquote, urlparse

from bs4 import BeautifulSoup
from bs4.dammit import EntitySubstitution
from bs4.element import Comment, PageElement, Tag
from bs4.formatter import HTMLFormatter

from .models import Media, MediaType

_BLOCK_OPEN_PATTERN = re.compile(
    r"^\s*wp:(?P<name>[a-z][a-z0-9_-]*(?:/[a-z][a-z0-9_-]*)?)\s*(?P<attrs>\{.*\})?\s*(?P<void>/)?\s*$",
    re.DOTALL,
)
_BLOCK_CLOSE_PATTERN = re.compile(r"^\s*/wp:(?P<name>[a-z][a-z0-9_-]*(?:/[a-z][a-z0-9_-]*)?)\s*$")
_BACKGROUND_URL_PATTERN = re.compile(r"background-image\s*:\s*url\(\s*(['\"]?)[^)'\"]*\1\s*\)")
_UPLOAD_ATTR = "data-wp_upload_id"
_DELIMITER_PATTERN = re.compile(
    r"<!--\s*(?P<close>/)?wp:[a-z][a-z0-9_-]*(?:/[a-z][a-z0-9_-]*)?(?P<rest>.*?)-->",
    re.DOTALL,
)
_ENTITY_PATTERN = re.compile(r"&(#[0-9]+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);")
# Stands in for "&" of character references while the markup is parsed.
_ENTITY_MARK = "\ufdd0"
_BOOLEAN_ATTRIBUTES = frozenset({"autoplay", "controls", "loop", "muted", "playsinline"})


class _BlockMarkupFormatter(HTMLFormatter):
    """Serializes like the block editor: source attribute order, ``/>`` voids."""

    def __init__(self) -> None:
        super().__init__(
            entity_substitution=EntitySubstitution.substitute_xml,
            void_element_close_prefix="/",
        )

    def attributes(self, tag: Tag) -> list[tuple[str, Any]]:
        return [
            (key, None if value == "" and key in _BOOLEAN_ATTRIBUTES else value)
            for key, value in tag.attrs.items()
        ]


_FORMATTER = _BlockMarkupFormatter()


def _serialize_attrs(attrs: dict[str, Any]) -> str:
    encoded = json.dumps(attrs, ensure_ascii=False, separators=(",", ":"))
    # A literal "--" would terminate the HTML comment that carries the block.
    return encoded.replace("--", "\\u002d\\u002d").replace("<", "\\u003c").replace(">", "\\u003e")


@dataclass(slots=True)
class Block:
    """A block delimited by ``<!-- wp:name {...} -->`` comments."""

    name: str
    attrs: dict[str, Any]
    opener: Comment
    inner: list[PageElement] = field(default_factory=list)
    void: bool = False

    def tags(self, name: str | Sequence[str] | None = None) -> Iterator[Tag]:
        """Tags inside the block in document order, including nested descendants."""
        names = (name,) if isinstance(name, str) else tuple(name or ())
        for node in self.inner:
            if not isinstance(node, Tag):
                continue
            if not names or node.name in names:
                yield node
            yield from node.find_all(list(names) if names else True)

    def write_attrs(self) -> None:
        attrs = f" {_serialize_attrs(self.attrs)}" if self.attrs else ""
        # Void blocks close with "/-->"; anything between breaks block parsing.
        suffix = " /" if self.void else " "
        replacement = Comment(f" wp:{self.name}{attrs}{suffix}")
        self.opener.replace_with(replacement)
        self.opener = replacement


@dataclass(slots=True)
class _Target:
    """The values one media item contributes to a rewrite."""

    media: Media
    upload_id: int
    server_id: int
    url: str
    image_url: str

    def swap_class(self, tag: Tag) -> bool:
        classes = list(tag.get("class") or [])
        old = f"wp-image-{self.upload_id}"
        if old not in classes:
            return False
        tag["class"] = [f"wp-image-{self.server_id}" if item == old else item for item in classes]
        return True


def parse_blocks(soup: BeautifulSoup) -> list[Block]:
    """Return every block in ``soup``, outer blocks before the blocks they contain."""
    blocks: list[Block] = []
    for comment in soup.find_all(string=lambda text: isinstance(text, Comment)):
        match = _BLOCK_OPEN_PATTERN.match(str(comment))
        if not match:
            continue
        name = match.group("name")
        raw_attrs = match.group("attrs")
        try:
            attrs = json.loads(raw_attrs) if raw_attrs else {}
        except json.JSONDecodeError:
            continue
        if not isinstance(attrs, dict):
            continue
        block = Block(name=name, attrs=attrs, opener=comment, void=bool(match.group("void")))
        if not block.void:
            block.inner = _collect_inner(comment, name)
        blocks.append(block)
    return blocks


def split_top_level(content: str) -> list[str]:
    """Cut ``content`` into top-level blocks and the freeform HTML between them.

    Joining the pieces gives back ``content`` exactly.
    """
    pieces: list[str] = []
    depth = 0
    start = 0
    for match in _DELIMITER_PATTERN.finditer(content):
        closing = match.group("close") is not None
        void = not closing and match.group("rest").rstrip().endswith("/")
        if closing:
            if depth == 0:
                continue
            depth -= 1
            if depth == 0:
                pieces.append(content[start:match.end()])
                start = match.end()
        elif depth == 0:
            if match.start() > start:
                pieces.append(content[start:match.start()])
            start = match.start()
            if void:
                pieces.append(content[start:match.end()])
                start = match.end()
            else:
                depth = 1
        elif not void:
            depth += 1
    if start < len(content):
        pieces.append(content[start:])
    return pieces


def _collect_inner(opener: Comment, name: str) -> list[PageElement]:
    inner: list[PageElement] = []
    depth = 0
    for sibling in opener.next_siblings:
        if isinstance(sibling, Comment):
            text = str(sibling)
            close = _BLOCK_CLOSE_PATTERN.match(text)
            if close and close.group("name") == name:
                if depth == 0:
                    return inner
                depth -= 1
            else:
                open_match = _BLOCK_OPEN_PATTERN.match(text)
                if open_match and open_match.group("name") == name and not open_match.group("void"):
                    depth += 1
        inner.append(sibling)
    return inner


class MediaReferenceRewriter:
    """Replaces upload placeholders with the final ids and URLs of uploaded media.

    Only the pre-upload placeholder forms are matched, so running the rewrite
    again over its own output leaves the content untouched. Top-level blocks
    without a match are passed through byte for byte.
    """

    def rewrite(self, content: str, media: Iterable[Media]) -> str:
        targets: list[_Target] = []
        for item in media:
            target = self._target_for(item)
            if target is not None:
                targets.append(target)
        if not content or not targets:
            return content

        pieces = split_top_level(content)
        rewritten = [self._rewrite_piece(piece, targets) for piece in pieces]
        if all(new is old for new, old in zip(rewritten, pieces)):
            return content
        return "".join(rewritten)

    def _rewrite_piece(self, piece: str, targets: Sequence[_Target]) -> str:
        soup = BeautifulSoup(_ENTITY_PATTERN.sub(_ENTITY_MARK + r"\1;", piece), "html.parser")
        changed = False
        for target in targets:
            # Block processors are more specific, so they run before the
            # generic HTML ones.
            for block in parse_blocks(soup):
                processor = self._block_processor(block.name, target.media)
                if processor is not None and processor(block, target):
                    changed = True
            if self._rewrite_legacy_html(soup, target):
                changed = True
        if not changed:
            return piece
        return soup.decode(formatter=_FORMATTER).replace(_ENTITY_MARK, "&")

    def _target_for(self, media: Media) -> _Target | None:
        if media.has_failed or media.media_id is None or not media.remote_url:
            return None
        return _Target(
            media=media,
            upload_id=media.gutenberg_upload_id,
            server_id=media.media_id,
            url=media.remote_url,
            image_url=media.best_image_url() or media.remote_url,
        )

    def _block_processor(
        self, block_name: str, media: Media
    ) -> Callable[[Block, _Target], bool] | None:
        if block_name == "file":
            return self._process_file_block
        processors: dict[MediaType, dict[str, Callable[[Block, _Target], bool]]] = {
            MediaType.IMAGE: {
                "image": self._process_image_block,
                "gallery": self._process_gallery_block,
                "cover": self._process_cover_block,
                "media-text": self._process_media_text_block,
                "jetpack/story": self._process_story_block,
            },
            MediaType.VIDEO: {
                "video": self._process_video_block,
                "cover": self._process_cover_block,
                "media-text": self._process_media_text_block,
                "jetpack/story": self._process_story_block,
                "videopress/video": self._process_videopress_block,
            },
            MediaType.AUDIO: {"audio": self._process_audio_block},
        }
        return processors.get(media.media_type, {}).get(block_name)

    # Block processors -------------------------------------------------

    def _process_image_block(self, block: Block, target: _Target) -> bool:
        if block.attrs.get("id") != target.upload_id:
            return False
        block.attrs["id"] = target.server_id
        block.write_attrs()
        for img in block.tags("img"):
            if target.swap_class(img):
                img["src"] = target.image_url
        return True

    def _process_gallery_block(self, block: Block, target: _Target) -> bool:
        changed = False
        ids = block.attrs.get("ids")
        if isinstance(ids, list) and target.upload_id in ids:
            block.attrs["ids"] = [target.server_id if item == target.upload_id else item for item in ids]
            changed = True
        images = block.attrs.get("images")
        if isinstance(images, list):
            for image in images:
                if isinstance(image, dict) and image.get("id") == target.upload_id:
                    image["id"] = target.server_id
                    image["url"] = target.image_url
                    changed = True
        if changed:
            block.write_attrs()

        for img in block.tags("img"):
            if img.get("data-id") != str(target.upload_id):
                continue
            img["data-id"] = str(target.server_id)
            img["src"] = target.image_url
            img["data-full-url"] = target.url
            if target.media.link:
                img["data-link"] = target.media.link
            target.swap_class(img)
            changed = True
        return changed

    def _process_cover_block(self, block: Block, target: _Target) -> bool:
        if block.attrs.get("id") != target.upload_id:
            return False
        block.attrs["id"] = target.server_id
        block.attrs["url"] = target.url
        block.write_attrs()
        for tag in block.tags(("img", "video", "div", "span")):
            if tag.name == "img" and target.swap_class(tag):
                tag["src"] = target.url
            elif tag.name == "video" and "wp-block-cover__video-background" in (tag.get("class") or []):
                tag["src"] = target.url
            style = tag.get("style")
            if isinstance(style, str) and "background-image" in style:
                tag["style"] = _BACKGROUND_URL_PATTERN.sub(
                    lambda _: f"background-image:url({target.url})", style
                )
        return True

    def _process_media_text_block(self, block: Block, target: _Target) -> bool:
        if block.attrs.get("mediaId") != target.upload_id:
            return False
        block.attrs["mediaId"] = target.server_id
        block.attrs["mediaLink"] = target.media.link or target.url
        block.write_attrs()
        for tag in block.tags(("img", "video")):
            if tag.name == "img":
                if target.swap_class(tag):
                    tag["src"] = target.image_url
            else:
                tag["src"] = target.url
        return True

    def _process_story_block(self, block: Block, target: _Target) -> bool:
        files = block.attrs.get("mediaFiles")
        if not isinstance(files, list):
            return False
        changed = False
        for item in files:
            if isinstance(item, dict) and item.get("id") == target.upload_id:
                item["id"] = target.server_id
                item["link"] = target.url
                item["url"] = target.url
                changed = True
        if changed:
            block.write_attrs()
        return changed

    def _process_video_block(self, block: Block, target: _Target) -> bool:
        if block.attrs.get("id") != target.upload_id:
            return False
        block.attrs["id"] = target.server_id
        block.write_attrs()
        for video in block.tags("video"):
            video["src"] = target.url
        return True

    def _process_videopress_block(self, block: Block, target: _Target) -> bool:
        guid = target.media.videopress_guid
        if not guid or block.attrs.get("id") != target.upload_id:
            return False
        block.attrs["id"] = target.server_id
        block.attrs["guid"] = guid
        block.write_attrs()
        return True

    def _process_audio_block(self, block: Block, target: _Target) -> bool:
        if block.attrs.get("id") != target.upload_id:
            return False
        block.attrs["id"] = target.server_id
        block.write_attrs()
        for audio in block.tags("audio"):
            audio["src"] = target.url
        return True

    def _process_file_block(self, block: Block, target: _Target) -> bool:
        if block.attrs.get("id") != target.upload_id:
            return False
        block.attrs["id"] = target.server_id
        block.attrs["href"] = target.url
        block.write_attrs()
        for tag in block.tags(("a", "object")):
            if tag.name == "a":
                tag["href"] = target.url
            else:
                tag["data"] = target.url
        return True

    # Legacy HTML ------------------------------------------------------

    def _rewrite_legacy_html(self, soup: BeautifulSoup, target: _Target) -> bool:
        media = target.media
        tag_name = {
            MediaType.IMAGE: "img",
            MediaType.VIDEO: "video",
            MediaType.DOCUMENT: "a",
        }.get(media.media_type)
        if tag_name is None:
            return False

        changed = False
        for tag in soup.find_all(tag_name, attrs={_UPLOAD_ATTR: media.upload_id}):
            del tag[_UPLOAD_ATTR]
            if tag_name == "img":
                tag["src"] = target.url
                if media.width:
                    tag["width"] = str(media.width)
                if media.height:
                    tag["height"] = str(media.height)
            elif tag_name == "video":
                tag["src"] = target.url
                if media.videopress_guid:
                    tag["data-wpvideopress"] = media.videopress_guid
            else:
                tag["href"] = target.url
                tag.string = _document_title(target.url)
            changed = True
        return changed


def _document_title(url: str) -> str:
    name = PurePosixPath(unquote(urlparse(url).path)).name
    return name or url


def placeholder_markup(media: Media) -> str:
    """Block markup referencing ``media`` by its temporary upload id."""
    upload_id = media.gutenberg_upload_id
    attrs = _serialize_attrs({"id": upload_id})
    src = media.local_path.as_uri() if media.local_path.is_absolute() else str(media.local_path)
    if media.media_type is MediaType.IMAGE:
        return (
            f'<!-- wp:image {attrs} -->\n<figure class="wp-block-image">'
            f'<img src="{src}" class="wp-image-{upload_id}"/></figure>\n<!-- /wp:image -->'
        )
    if media.media_type is MediaType.VIDEO:
        return (
            f'<!-- wp:video {attrs} -->\n<figure class="wp-block-video">'
            f'<video controls src="{src}"></video></figure>\n<!-- /wp:video -->'
        )
    if media.media_type is MediaType.AUDIO:
        return (
            f'<!-- wp:audio {attrs} -->\n<figure class="wp-block-audio">'
            f'<audio controls src="{src}"></audio></figure>\n<!-- /wp:audio -->'
        )
    file_attrs = _serialize_attrs({"id": upload_id, "href": src})
    return (
        f'<!-- wp:file {file_attrs} -->\n<div class="wp-block-file">'
        f'<a href="{src}">{html.escape(media.filename)}</a></div>\n<!-- /wp:file -->'
    )


__all__ = ["Block", "MediaReferenceRewriter", "parse_blocks", "placeholder_markup", "split_top_level"]
