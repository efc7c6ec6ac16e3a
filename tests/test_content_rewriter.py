"""Tests for media reference rewriting in post content."""

from __future__ import annotations

from pathlib import Path

from post_uploader.services.content_rewriter import (
    MediaReferenceRewriter,
    placeholder_markup,
    split_top_level,
)
from post_uploader.services.models import Media, MediaType, RemoteStatus


def _uploaded(
    media_type: MediaType = MediaType.IMAGE,
    *,
    upload_id: int = -5,
    media_id: int = 42,
    url: str = "https://cdn.example.com/a.jpg",
    **fields: object,
) -> Media:
    return Media(
        local_path=Path("/tmp/a.jpg"),
        media_type=media_type,
        upload_id="legacy-1",
        gutenberg_upload_id=upload_id,
        remote_status=RemoteStatus.SYNC,
        media_id=media_id,
        remote_url=url,
        **fields,
    )


def test_image_block_gets_server_id_class_and_large_url() -> None:
    content = (
        '<!-- wp:image {"id":-5} -->\n'
        '<figure class="wp-block-image"><img src="file:///tmp/a.jpg" class="wp-image--5"/></figure>\n'
        "<!-- /wp:image -->"
    )
    media = _uploaded(remote_large_url="https://cdn.example.com/a-1024.jpg")

    result = MediaReferenceRewriter().rewrite(content, [media])

    assert '<!-- wp:image {"id":42} -->' in result
    assert "wp-image-42" in result
    assert "wp-image--5" not in result
    assert 'src="https://cdn.example.com/a-1024.jpg"' in result
    assert "<!-- /wp:image -->" in result


def test_rewrite_is_idempotent() -> None:
    content = (
        '<!-- wp:image {"id":-5} -->\n'
        '<figure class="wp-block-image"><img src="file:///tmp/a.jpg" class="wp-image--5"/></figure>\n'
        "<!-- /wp:image -->"
    )
    rewriter = MediaReferenceRewriter()
    media = _uploaded()

    once = rewriter.rewrite(content, [media])
    twice = rewriter.rewrite(once, [media])

    assert twice == once


def test_content_without_references_is_returned_unchanged() -> None:
    content = "<!-- wp:paragraph --><p>Hello &amp; welcome</p><!-- /wp:paragraph -->"

    assert MediaReferenceRewriter().rewrite(content, [_uploaded()]) is content


def test_failed_and_pending_media_are_ignored() -> None:
    content = '<!-- wp:image {"id":-5} --><figure><img class="wp-image--5"/></figure><!-- /wp:image -->'
    failed = _uploaded()
    failed.remote_status = RemoteStatus.FAILED
    pending = Media(local_path=Path("/tmp/b.jpg"), media_type=MediaType.IMAGE, gutenberg_upload_id=-5)

    assert MediaReferenceRewriter().rewrite(content, [failed, pending]) is content


def test_gallery_ids_and_images_are_rewritten() -> None:
    content = (
        '<!-- wp:gallery {"ids":[-5,7]} -->\n'
        '<figure class="wp-block-gallery"><ul><li><figure>'
        '<img src="file:///tmp/a.jpg" data-id="-5" class="wp-image--5"/>'
        "</figure></li></ul></figure>\n"
        "<!-- /wp:gallery -->"
    )
    media = _uploaded(link="https://site.example.com/?attachment_id=42")

    result = MediaReferenceRewriter().rewrite(content, [media])

    assert '"ids":[42,7]' in result
    assert 'data-id="42"' in result
    assert 'data-full-url="https://cdn.example.com/a.jpg"' in result
    assert 'data-link="https://site.example.com/?attachment_id=42"' in result
    assert "wp-image-42" in result


def test_image_block_nested_inside_gallery() -> None:
    content = (
        '<!-- wp:gallery {"linkTo":"none"} -->\n'
        '<figure class="wp-block-gallery"><!-- wp:image {"id":-5} -->\n'
        '<figure class="wp-block-image"><img src="file:///tmp/a.jpg" class="wp-image--5"/></figure>\n'
        "<!-- /wp:image --></figure>\n"
        "<!-- /wp:gallery -->"
    )

    result = MediaReferenceRewriter().rewrite(content, [_uploaded()])

    assert '<!-- wp:image {"id":42} -->' in result
    assert '<!-- wp:gallery {"linkTo":"none"} -->' in result
    assert "wp-image-42" in result


def test_cover_block_rewrites_url_and_background_style() -> None:
    content = (
        '<!-- wp:cover {"id":-5,"url":"file:///tmp/a.jpg"} -->\n'
        '<div class="wp-block-cover" style="background-image:url(file:///tmp/a.jpg)"></div>\n'
        "<!-- /wp:cover -->"
    )

    result = MediaReferenceRewriter().rewrite(content, [_uploaded()])

    assert '"id":42' in result
    assert '"url":"https://cdn.example.com/a.jpg"' in result
    assert "background-image:url(https://cdn.example.com/a.jpg)" in result


def test_media_text_block_uses_attachment_link() -> None:
    content = (
        '<!-- wp:media-text {"mediaId":-5,"mediaType":"image"} -->\n'
        '<div class="wp-block-media-text"><figure class="wp-block-media-text__media">'
        '<img src="file:///tmp/a.jpg" class="wp-image--5"/></figure></div>\n'
        "<!-- /wp:media-text -->"
    )
    media = _uploaded(link="https://site.example.com/?attachment_id=42")

    result = MediaReferenceRewriter().rewrite(content, [media])

    assert '"mediaId":42' in result
    assert '"mediaLink":"https://site.example.com/?attachment_id=42"' in result
    assert 'src="https://cdn.example.com/a.jpg"' in result


def test_story_block_media_files() -> None:
    content = (
        '<!-- wp:jetpack/story {"mediaFiles":[{"id":-5,"url":"file:///tmp/a.jpg","type":"image"}]} -->\n'
        '<div class="wp-story"></div>\n'
        "<!-- /wp:jetpack/story -->"
    )

    result = MediaReferenceRewriter().rewrite(content, [_uploaded()])

    assert '"id":42' in result
    assert '"url":"https://cdn.example.com/a.jpg"' in result
    assert '"type":"image"' in result


def test_videopress_void_block_gets_guid() -> None:
    content = '<!-- wp:videopress/video {"id":-9} /-->'
    media = _uploaded(MediaType.VIDEO, upload_id=-9, videopress_guid="AbCd1234")

    result = MediaReferenceRewriter().rewrite(content, [media])

    assert result == '<!-- wp:videopress/video {"id":42,"guid":"AbCd1234"} /-->'


def test_videopress_block_without_guid_is_left_alone() -> None:
    content = '<!-- wp:videopress/video {"id":-9} /-->'
    media = _uploaded(MediaType.VIDEO, upload_id=-9)

    assert MediaReferenceRewriter().rewrite(content, [media]) is content


def test_audio_block_source_is_replaced() -> None:
    content = (
        '<!-- wp:audio {"id":-2} -->\n'
        '<figure class="wp-block-audio"><audio controls src="file:///tmp/a.mp3"></audio></figure>\n'
        "<!-- /wp:audio -->"
    )
    media = _uploaded(MediaType.AUDIO, upload_id=-2, url="https://cdn.example.com/a.mp3")

    result = MediaReferenceRewriter().rewrite(content, [media])

    assert '<!-- wp:audio {"id":42} -->' in result
    assert '<audio controls src="https://cdn.example.com/a.mp3"></audio>' in result


def test_file_block_href_and_link() -> None:
    content = (
        '<!-- wp:file {"id":-3,"href":"file:///tmp/doc.pdf"} -->\n'
        '<div class="wp-block-file"><a href="file:///tmp/doc.pdf">doc.pdf</a></div>\n'
        "<!-- /wp:file -->"
    )
    media = _uploaded(MediaType.DOCUMENT, upload_id=-3, url="https://cdn.example.com/doc.pdf")

    result = MediaReferenceRewriter().rewrite(content, [media])

    assert '"id":42,"href":"https://cdn.example.com/doc.pdf"' in result
    assert 'href="https://cdn.example.com/doc.pdf"' in result


def test_legacy_image_markup_is_matched_by_upload_attribute() -> None:
    content = '<p><img src="file:///tmp/a.jpg" data-wp_upload_id="legacy-1"/></p>'
    media = _uploaded(width=640, height=480)

    result = MediaReferenceRewriter().rewrite(content, [media])

    assert "data-wp_upload_id" not in result
    assert 'src="https://cdn.example.com/a.jpg"' in result
    assert 'width="640"' in result
    assert 'height="480"' in result


def test_legacy_document_link_text_becomes_file_name() -> None:
    content = '<p><a href="file:///tmp/doc.pdf" data-wp_upload_id="legacy-1">uploading…</a></p>'
    media = _uploaded(MediaType.DOCUMENT, url="https://cdn.example.com/files/report%202024.pdf")

    result = MediaReferenceRewriter().rewrite(content, [media])

    assert ">report 2024.pdf</a>" in result
    assert 'href="https://cdn.example.com/files/report%202024.pdf"' in result


def test_placeholder_markup_is_resolved_after_upload() -> None:
    media = Media(local_path=Path("/tmp/photo.jpg"), media_type=MediaType.IMAGE, gutenberg_upload_id=-77)
    content = placeholder_markup(media)
    assert "wp-image--77" in content

    media.remote_status = RemoteStatus.SYNC
    media.media_id = 501
    media.remote_url = "https://cdn.example.com/photo.jpg"

    result = MediaReferenceRewriter().rewrite(content, [media])

    assert '<!-- wp:image {"id":501} -->' in result
    assert "wp-image-501" in result
    assert "file:///tmp/photo.jpg" not in result


def test_blocks_without_references_are_kept_byte_for_byte() -> None:
    paragraph = "<!-- wp:paragraph -->\n<p>a&nbsp;b<br>c</p>\n<!-- /wp:paragraph -->\n\n"
    freeform = "\n\n<p>x &amp; y<br>z</p>\n"
    image = (
        '<!-- wp:image {"id":-5} -->\n'
        '<figure class="wp-block-image"><img src="file:///tmp/a.jpg" class="wp-image--5"/></figure>\n'
        "<!-- /wp:image -->"
    )

    result = MediaReferenceRewriter().rewrite(paragraph + image + freeform, [_uploaded()])

    assert result.startswith(paragraph)
    assert result.endswith(freeform)
    assert '<!-- wp:image {"id":42} -->' in result


def test_rewritten_block_keeps_entities_and_attribute_order() -> None:
    content = (
        '<!-- wp:image {"id":-5} -->\n'
        '<figure class="wp-block-image"><img src="file:///tmp/a.jpg" alt="" class="wp-image--5"/>'
        "<figcaption>Tom&nbsp;&amp; Jerry</figcaption></figure>\n"
        "<!-- /wp:image -->"
    )

    result = MediaReferenceRewriter().rewrite(content, [_uploaded()])

    assert '<img src="https://cdn.example.com/a.jpg" alt="" class="wp-image-42"/>' in result
    assert "<figcaption>Tom&nbsp;&amp; Jerry</figcaption>" in result


def test_split_top_level_keeps_nested_and_void_blocks_whole() -> None:
    content = (
        "<p>intro</p>"
        '<!-- wp:gallery --><figure><!-- wp:image {"id":1} --><img/><!-- /wp:image --></figure>'
        "<!-- /wp:gallery -->\n"
        '<!-- wp:videopress/video {"id":2} /-->'
    )

    pieces = split_top_level(content)

    assert "".join(pieces) == content
    assert pieces[0] == "<p>intro</p>"
    assert pieces[1].startswith("<!-- wp:gallery -->") and pieces[1].endswith("<!-- /wp:gallery -->")
    assert pieces[2] == "\n"
    assert pieces[3] == '<!-- wp:videopress/video {"id":2} /-->'
