"""Tag derivation, tag filtering and the manager-mode gate for the projects section."""
from typing import Optional


def split_technologies(technologies: Optional[str]) -> list[str]:
    """'React, Node,, SQL ' -> ['React', 'Node', 'SQL']"""
    return [tech.strip() for tech in (technologies or '').split(',') if tech.strip()]


def derive_tags(projects) -> list[str]:
    tags = set()
    for project in projects:
        tags.update(split_technologies(project.get('technologies')))
    return sorted(tags)


def filter_by_tag(projects, tag: Optional[str]) -> list[dict]:
    if not tag:
        return list(projects)
    needle = tag.lower()
    return [p for p in projects if needle in (p.get('technologies') or '').lower()]


def toggle_tag(active: Optional[str], tag: Optional[str]) -> Optional[str]:
    """Selecting the active tag again clears the filter."""
    if not tag or tag == active:
        return None
    return tag


def can_manage(identity, manager_mode: bool) -> bool:
    return bool(manager_mode and identity is not None and identity.ready and identity.is_owner)


def external_url(url: Optional[str]) -> Optional[str]:
    """Link target for a project URL; None when there is nothing to link to."""
    url = (url or '').strip()
    if not url or url == '#':
        return None
    return url if url.startswith('http') else f'https://{url}'
