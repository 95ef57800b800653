"""
Profile shown in the hero, about and contact sections.
Held in memory per identity; a process restart brings back the defaults.
"""
import threading
from dataclasses import dataclass, replace

EDITABLE_FIELDS = ('name', 'tagline', 'about', 'avatar_url')


@dataclass(frozen=True)
class Profile:
    name: str
    tagline: str
    about: str
    email: str
    github: str
    linkedin: str
    avatar_url: str

    @property
    def has_avatar(self) -> bool:
        return 'http' in (self.avatar_url or '')

    @property
    def initial(self) -> str:
        return self.name[:1].upper() if self.name else '?'

    @property
    def first_name(self) -> str:
        return self.name.split(' ')[0] if self.name else ''

    @classmethod
    def from_config(cls, cfg) -> 'Profile':
        return cls(
            name=cfg['PROFILE_NAME'],
            tagline=cfg['PROFILE_TAGLINE'],
            about=cfg['PROFILE_ABOUT'],
            email=cfg['PROFILE_EMAIL'],
            github=cfg['PROFILE_GITHUB'],
            linkedin=cfg['PROFILE_LINKEDIN'],
            avatar_url=cfg['PROFILE_AVATAR_URL'],
        )


class ProfileStore:
    def __init__(self, default: Profile):
        self.default = default
        self._lock = threading.Lock()
        self._profiles = {}

    def get(self, identity_token) -> Profile:
        with self._lock:
            return self._profiles.get(identity_token, self.default)

    def update(self, identity_token, **fields) -> Profile:
        changes = {k: v.strip() for k, v in fields.items() if k in EDITABLE_FIELDS and v is not None}
        # A blank name would leave the page without a title.
        if 'name' in changes and not changes['name']:
            del changes['name']
        with self._lock:
            profile = replace(self._profiles.get(identity_token, self.default), **changes)
            self._profiles[identity_token] = profile
        return profile


def page_metadata(profile: Profile, url: str = '') -> dict:
    """Document title plus the description and Open Graph tags for the head."""
    title = f'{profile.name} | Full-Stack Developer Portfolio'
    description = (
        f"{profile.name}'s professional portfolio showcasing full-stack web, "
        "database and mobile development projects."
    )
    return {
        'title': title,
        'meta': {'description': description},
        'og': {
            'og:title': title,
            'og:description': description,
            'og:url': url,
            'og:type': 'website',
        },
    }
