import pytest

from course_mirror.models import LessonContent, VideoType, detect_video_type


@pytest.mark.parametrize("url,raw_type,expected", [
    ("https://cdn.example.com/v/master.m3u8", None, VideoType.HLS),
    ("https://cdn.example.com/v/master.M3U8?token=x", None, VideoType.HLS),
    ("https://cdn.example.com/v/hi/index?token=x", "hls", VideoType.HLS),
    ("https://player.vimeo.com/video/123", None, VideoType.EMBED),
    ("https://vimeo.com/123456", None, VideoType.EMBED),
    ("https://www.loom.com/embed/abc123", None, VideoType.EMBED),
    ("https://www.loom.com/share/abc123", None, VideoType.EMBED),
    ("https://www.youtube.com/embed/dQw4w9WgXcQ", None, VideoType.EMBED),
    ("https://www.youtube-nocookie.com/embed/dQw4w9WgXcQ", None, VideoType.EMBED),
    ("https://youtu.be/dQw4w9WgXcQ", None, VideoType.EMBED),
    ("https://fast.wistia.net/embed/iframe/abc123", None, VideoType.EMBED),
    ("https://cdn.example.com/player?id=9", "embed", VideoType.EMBED),
    ("https://cdn.example.com/v/intro.mp4", None, VideoType.FILE),
    ("https://cdn.example.com/v/intro.mp4", "file", VideoType.FILE),
    (None, "hls", VideoType.NONE),
    ("", None, VideoType.NONE),
])
def test_detect_video_type(url, raw_type, expected):
    assert detect_video_type(url, raw_type) == expected


def test_lesson_content_from_page_data():
    content = LessonContent.from_page_data({
        "video_url": "https://www.loom.com/share/abc123",
        "attachments": [
            {"name": "slides.pdf", "url": "https://files.example.com/slides.pdf"},
            {"name": "missing"},
        ],
    }, fallback_title="Intro")

    assert content.title == "Intro"
    assert content.video_type == VideoType.EMBED
    assert [a.name for a in content.attachments] == ["slides.pdf"]
