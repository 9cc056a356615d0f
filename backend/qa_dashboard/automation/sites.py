"""
Site capability table.

Each site under test differs in a handful of selectors and page behaviours.
Scripts read those differences from a SiteProfile instead of branching on the
site name; sites missing from the table get the default profile.
"""

from dataclasses import dataclass, field

from qa_dashboard.models.catalog import FeatureKind

FEED_SCROLL = "scroll"
FEED_VIDEO = "video"

BASIC_KINDS = frozenset({FeatureKind.CHAT, FeatureKind.SCROLL_HOME})
ALL_KINDS = frozenset(FeatureKind)


@dataclass(frozen=True)
class SiteProfile:
    name: str

    # Login form
    login_trigger_selector: str = ".login-text"
    email_selector: str = "#input-7"
    password_selector: str = "#input-9"
    login_submit_selector: str = "#btn-register"

    # Home feed
    feed_mode: str = FEED_SCROLL
    scroll_container_class: str | None = None  # None scrolls the window
    scroll_top: int = 1000
    video_feed_class: str = "video-feed"
    wheel_delta_y: int = 150

    # Store / games
    game_button_index: int = 1
    game_path: str = "/game/birdy-trick"

    supported_kinds: frozenset = field(default=BASIC_KINDS)

    @property
    def base_url(self) -> str:
        return f"https://{self.name}"

    @property
    def login_url(self) -> str:
        return self.url("/login")

    def url(self, path: str = "") -> str:
        return f"{self.base_url}{path}"

    def supports(self, kind: FeatureKind) -> bool:
        return kind in self.supported_kinds


SITE_PROFILES: dict[str, SiteProfile] = {
    "senti.live": SiteProfile(
        name="senti.live",
        scroll_container_class="root-observed",
    ),
    "hothinge.com": SiteProfile(
        name="hothinge.com",
        email_selector="#input-19",
        password_selector="#input-21",
    ),
    "shorts.senti.live": SiteProfile(
        name="shorts.senti.live",
        feed_mode=FEED_VIDEO,
        supported_kinds=ALL_KINDS,
    ),
    "viblys.com": SiteProfile(
        name="viblys.com",
        feed_mode=FEED_VIDEO,
        supported_kinds=ALL_KINDS,
    ),
}


def get_site_profile(name: str) -> SiteProfile:
    return SITE_PROFILES.get(name) or SiteProfile(name=name)
