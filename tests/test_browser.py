import pytest

from course_mirror.auth import LoginGate
from course_mirror.browser import discover_course
from course_mirror.exceptions import AuthenticationRequired

from conftest import FakeBrowser

COURSE_URL = "https://www.skool.com/my-community/classroom"
MODULE_URL = "https://www.skool.com/my-community/classroom/m1"
LOCKED_URL = "https://www.skool.com/my-community/classroom/m2"


def course_pages():
    return {
        COURSE_URL: {
            "title": "Growth Lab",
            "modules": [
                {"id": "m1", "title": "Getting Started", "url": MODULE_URL},
                {"id": "m2", "title": "VIP Only", "url": LOCKED_URL, "locked": True},
            ],
        },
        MODULE_URL: {
            "lessons": [
                {"id": "l1", "title": "Intro", "url": MODULE_URL + "?md=l1"},
                {"id": None, "title": "No link", "url": None},
                {"id": "l2", "title": "Setup", "url": MODULE_URL + "?md=l2"},
            ],
        },
    }


def test_discover_course():
    browser = FakeBrowser(course_pages())
    course = discover_course(browser, COURSE_URL, LoginGate())

    assert course.title == "Growth Lab"
    assert course.community_slug == "my-community"
    assert [m.title for m in course.modules] == ["Getting Started", "VIP Only"]
    assert [(l.index, l.lesson_id) for l in course.modules[0].lessons] == [(0, "l1"), (1, "l2")]
    assert course.total_lessons == 2


def test_locked_modules_are_not_opened():
    browser = FakeBrowser(course_pages())
    course = discover_course(browser, COURSE_URL, LoginGate())

    assert course.modules[1].is_locked
    assert course.modules[1].lessons == []
    assert LOCKED_URL not in browser.visited


def test_page_without_modules_becomes_single_module():
    browser = FakeBrowser({
        COURSE_URL: {
            "title": "Solo",
            "lessons": [{"id": "p1", "title": "Post", "url": COURSE_URL + "/posts/p1"}],
        }
    })
    course = discover_course(browser, COURSE_URL, LoginGate())

    assert len(course.modules) == 1
    assert course.modules[0].title == "Solo"
    assert course.modules[0].lessons[0].lesson_id == "p1"


def test_redirect_to_login_raises():
    browser = FakeBrowser({}, redirects={COURSE_URL: "https://www.skool.com/login"})
    with pytest.raises(AuthenticationRequired) as excinfo:
        discover_course(browser, COURSE_URL, LoginGate())
    assert excinfo.value.platform == "skool"


def test_discovery_stops_when_shutdown_is_requested():
    pages = {
        COURSE_URL: {
            "title": "Growth Lab",
            "modules": [
                {"id": f"m{i}", "title": f"Module {i}", "url": f"{COURSE_URL}/m{i}"}
                for i in range(1, 6)
            ],
        },
    }
    for i in range(1, 6):
        pages[f"{COURSE_URL}/m{i}"] = {
            "lessons": [{"id": f"l{i}", "title": "Lesson", "url": f"{COURSE_URL}/m{i}?md=l{i}"}],
        }
    browser = FakeBrowser(pages)

    # コースページとモジュール1つを開いた後に中断
    course = discover_course(browser, COURSE_URL, LoginGate(),
                             should_continue=lambda: len(browser.visited) < 2)

    assert browser.visited == [COURSE_URL, f"{COURSE_URL}/m1"]
    assert course.total_lessons == 1
