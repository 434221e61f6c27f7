import pytest

from client.youtube import extract_video_id


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://youtu.be/abc123", "abc123"),
        ("https://www.youtube.com/watch?v=abc123&t=5", "abc123"),
        ("https://www.youtube.com/embed/abc123", "abc123"),
        ("https://www.youtube.com/watch?feature=share&v=abc123", "abc123"),
        ("https://youtu.be/abc123?si=tracking", "abc123"),
        ("https://m.youtube.com/watch?v=abc123", "abc123"),
        ("youtu.be/abc123", "abc123"),
        ("  https://www.youtube.com/embed/abc123?autoplay=1  ", "abc123"),
    ],
)
def test_extract_video_id_recognises_supported_shapes(url: str, expected: str) -> None:
    assert extract_video_id(url) == expected


@pytest.mark.parametrize(
    "url",
    [
        "not a url",
        "",
        "https://vimeo.com/12345",
        "https://www.youtube.com/",
        "https://example.com/page?v=abc123",
        "https://example.com/embed/abc123",
        "https://notyoutu.be/abc123",
        "https://example.com/?next=https://youtu.be/abc123",
    ],
)
def test_extract_video_id_returns_none_for_unknown_shapes(url: str) -> None:
    assert extract_video_id(url) is None
