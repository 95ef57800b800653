"""
Example projects added once for an owner whose showcase is still empty.
"""
import logging
import threading

logger = logging.getLogger(__name__)

# Replace these with your real projects
SEED_PROJECTS = [
    {
        "title": "Invoice Generator",
        "description": (
            "A fast and intuitive billing tool for freelancers and small businesses. It creates clean, "
            "professional invoices in seconds, with credit management, automatic totals, tax handling "
            "and customer tracking built in, and exports every invoice for download or sharing."
        ),
        "technologies": "Python, Flask, SQLite, HTML, CSS, JavaScript",
        "github_url": "https://github.com/",
        "live_demo_url": "#",
    },
    {
        "title": "Learning Guidance Platform",
        "description": (
            "A guidance platform that supports students with structured roadmaps, exam preparation "
            "plans and mentorship matching. It favours practical direction over generic advice and "
            "keeps each learner's progress in one place."
        ),
        "technologies": "Python, Flask, HTML, CSS, JavaScript",
        "github_url": "https://github.com/",
        "live_demo_url": "#",
    },
    {
        "title": "Portfolio Website",
        "description": (
            "This portfolio: a Flask application with a live projects showcase, technology filters "
            "and an owner-only management panel that can draft project descriptions with Gemini."
        ),
        "technologies": "Flask, SQLAlchemy, HTML, CSS",
        "github_url": "https://github.com/",
        "live_demo_url": "#",
    },
]


class ProjectSeeder:
    """
    Schedules the example projects for an empty owner showcase.

    Arms at most once. When the timer fires the list is checked again, so a
    project added in the meantime cancels the seeding.
    """

    def __init__(self, repository, projects=None, delay: float = 1.5, timer_factory=threading.Timer):
        self.repository = repository
        self.projects = SEED_PROJECTS if projects is None else projects
        self.delay = delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        self.done = False

    @property
    def scheduled(self) -> bool:
        return self._timer is not None

    def maybe_schedule(self, identity) -> bool:
        repo = self.repository
        if identity is None or not identity.is_owner or repo.owner_id != identity.token:
            return False
        if repo.loading or repo.error or repo.projects:
            return False
        with self._lock:
            if self.done or self._timer is not None:
                return False
            self._timer = self._timer_factory(self.delay, self.run)
            self._timer.daemon = True
            self._timer.start()
        logger.info('Showcase for %s is empty; seeding in %.1fs', identity.token, self.delay)
        return True

    def run(self) -> int:
        with self._lock:
            if self.done:
                return 0
            self.done = True
        if self.repository.projects:
            return 0
        added = 0
        for project in self.projects:
            if self.repository.create(project) is None:
                added += 1
        logger.info('Seeded %d example projects for %s', added, self.repository.owner_id)
        return added

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
