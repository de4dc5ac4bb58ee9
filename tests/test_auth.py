import pytest

from course_mirror.auth import LoginGate


@pytest.mark.parametrize("url,platform", [
    ("https://www.skool.com/login?next=/my-community", "skool"),
    ("https://sso.clientclub.net/authorize?x=1", "highlevel"),
    ("https://sso.example.com/", "highlevel"),
    ("https://courses.example.com/login", "*"),
    ("https://example.com/signin", "*"),
    ("https://example.com/auth?redirect=/", "*"),
    ("https://accounts.google.com/o/oauth2/auth", "*"),
    ("https://my-app.firebaseapp.com/__/auth/handler", "*"),
])
def test_match_login_pages(url, platform):
    assert LoginGate().match(url) == platform
    assert LoginGate().is_login_page(url)


@pytest.mark.parametrize("url", [
    "https://www.skool.com/my-community/classroom/abc?md=123",
    "https://member.example.com/courses/products/42",
    "https://example.com/author/jane",
    "",
])
def test_content_pages_are_not_login(url):
    assert not LoginGate().is_login_page(url)


def test_first_matching_pattern_wins():
    gate = LoginGate([(r"/login", "first"), (r"example\.com/login", "second")])
    assert gate.match("https://example.com/login") == "first"


def test_for_platform_keeps_generic_patterns():
    gate = LoginGate.for_platform("skool")
    assert gate.match("https://www.skool.com/login") == "skool"
    assert gate.match("https://accounts.google.com/signin") == "*"
    # highlevel 専用のパターンは含まない
    assert gate.match("https://sso.clientclub.net/x") is None
