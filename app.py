"""
Personal portfolio site: hero, about, projects and contact sections, plus an
owner-only manager mode for adding, editing and deleting projects.
"""
import logging
import os

from flask import (
    Blueprint,
    Flask,
    current_app,
    flash,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    session,
    url_for,
)

from changefeed import ChangeFeed
from config import config, data_service_uri
from drafting import (
    BUSY_ERROR,
    EXHAUSTED_ERROR,
    NOT_CONFIGURED_ERROR,
    VALIDATION_ERROR,
    DraftingClient,
    RetryPolicy,
)
from identity import CookieIdentityStore, IdentityResolver
from models import db
from owner_profile import Profile, ProfileStore, page_metadata
from repository import DataService, ProjectRepository, RepositoryRegistry
from seed import ProjectSeeder
from showcase import (
    can_manage,
    derive_tags,
    external_url,
    filter_by_tag,
    split_technologies,
    toggle_tag,
)

REQUIRED_FIELDS_ERROR = "Title, Description, and Technologies are required."
NOT_OWNER_ERROR = "SECURITY ERROR: You must be authenticated as the app owner to add/edit projects."
ACCESS_DENIED = "Access Denied: Only the owner can access Manager Mode."

_DRAFT_STATUS = {
    VALIDATION_ERROR: 400,
    BUSY_ERROR: 409,
    NOT_CONFIGURED_ERROR: 503,
    EXHAUSTED_ERROR: 502,
}

site = Blueprint("site", __name__)


class Portfolio:
    """Process-wide services, built once from configuration and shared by every request."""

    def __init__(self, app: Flask):
        cfg = app.config
        self.feed = ChangeFeed()
        self.service = None

        uri = data_service_uri(cfg.get("DATA_SERVICE_URL"), cfg.get("DATA_SERVICE_KEY"))
        if uri:
            cfg["SQLALCHEMY_DATABASE_URI"] = uri
            db.init_app(app)
            self.feed.init_app(app, db)
            self.service = DataService(app)
            if cfg.get("AUTO_CREATE_TABLES"):
                with app.app_context():
                    db.create_all()
        else:
            app.logger.error(
                "Data service not configured (PORTFOLIO_DATA_URL / PORTFOLIO_DATA_KEY); "
                "project data is disabled."
            )

        self.resolver = IdentityResolver(cfg.get("OWNER_ID"))
        self.identity_store = CookieIdentityStore(
            cfg["IDENTITY_COOKIE"],
            cfg["IDENTITY_MAX_AGE"],
            secure=cfg.get("SESSION_COOKIE_SECURE", False),
        )

        channel = f"{cfg['APP_ID']}:public_projects_changes"
        debounce_delay = cfg["CREATE_DEBOUNCE_SECONDS"]
        self.repositories = RepositoryRegistry(
            lambda owner_id: ProjectRepository(
                self.service, owner_id, self.feed, channel=channel, debounce_delay=debounce_delay
            ),
            max_size=cfg["MAX_LIVE_REPOSITORIES"],
        )

        self.drafting = DraftingClient(
            cfg.get("GEMINI_API_KEY"),
            cfg["GEMINI_MODEL"],
            cfg["GEMINI_API_BASE"],
            timeout=cfg["DRAFT_TIMEOUT"],
            policy=RetryPolicy(cfg["DRAFT_MAX_ATTEMPTS"], cfg["DRAFT_INITIAL_DELAY"]),
        )
        self.profiles = ProfileStore(Profile.from_config(cfg))

        self.seed_enabled = cfg["SEED_ENABLED"]
        self.seed_delay = cfg["SEED_DELAY_SECONDS"]
        self.seeder = None

    def resolve_identity(self):
        return self.resolver.resolve(self.identity_store, data_ready=self.service is not None)

    def repository_for(self, identity) -> ProjectRepository:
        """Live view for the owner; a one-off load for everyone else."""
        if self.service is None or not identity.token or not identity.is_owner:
            # Not registered. Without a service every call on it reports not ready.
            repository = ProjectRepository(self.service, identity.token)
            repository.activate()
            return repository
        return self.repositories.get(identity.token)

    def seed_if_empty(self, repository, identity) -> bool:
        if not self.seed_enabled or not identity.is_owner:
            return False
        if self.seeder is None or self.seeder.repository is not repository:
            self.seeder = ProjectSeeder(repository, delay=self.seed_delay)
        return self.seeder.maybe_schedule(identity)

    def close(self):
        if self.seeder is not None:
            self.seeder.cancel()
        self.repositories.close()


def get_portfolio() -> Portfolio:
    return current_app.extensions["portfolio"]


def _manager_mode() -> bool:
    return can_manage(g.identity, session.get("manager_mode", False))


def _form_data(source) -> dict:
    return {
        "id": (source.get("id") or "").strip(),
        "title": (source.get("title") or "").strip(),
        "description": (source.get("description") or "").strip(),
        "technologies": (source.get("technologies") or "").strip(),
        "github_url": (source.get("github_url") or source.get("githubUrl") or "").strip(),
        "live_demo_url": (source.get("live_demo_url") or source.get("liveDemoUrl") or "").strip(),
    }


def _serialize(project: dict) -> dict:
    data = dict(project)
    if data.get("created_at") is not None:
        data["created_at"] = data["created_at"].isoformat()
    return data


def _render_index(form=None, draft_error=None, status=200):
    portfolio = get_portfolio()
    identity = g.identity
    repo = portfolio.repository_for(identity)
    manager_mode = _manager_mode()

    active_tag = request.args.get("tag") or None
    editing = None
    if form is None:
        edit_id = request.args.get("edit")
        if manager_mode and edit_id:
            editing = repo.find(edit_id)
        form = _form_data(editing or {})
    elif form.get("id"):
        editing = repo.find(form["id"])

    if not repo.loading:
        portfolio.seed_if_empty(repo, identity)

    profile = portfolio.profiles.get(identity.token)
    return render_template(
        "index.html",
        profile=profile,
        meta=page_metadata(profile, request.url),
        identity=identity,
        manager_mode=manager_mode,
        access_denied=session.get("manager_mode", False) and not manager_mode,
        repo=repo,
        projects=filter_by_tag(repo.projects, active_tag),
        all_projects=repo.projects,
        tags=derive_tags(repo.projects),
        active_tag=active_tag,
        form=form,
        editing=editing,
        draft_error=draft_error,
        adding=repo.add.pending,
    ), status


@site.before_app_request
def load_identity():
    if request.endpoint == "static":
        return
    g.identity = get_portfolio().resolve_identity()


@site.route("/")
def index():
    return _render_index()


@site.route("/manager/toggle", methods=["POST"])
def toggle_manager():
    if g.identity.ready and g.identity.is_owner:
        session["manager_mode"] = not session.get("manager_mode", False)
    else:
        session["manager_mode"] = False
        current_app.logger.warning("Manager mode refused for identity %s", g.identity.token)
        flash(ACCESS_DENIED, "error")
    return redirect(url_for("site.index"))


@site.route("/projects", methods=["POST"])
def save_project():
    form = _form_data(request.form)

    if not form["title"] or not form["description"] or not form["technologies"]:
        flash(REQUIRED_FIELDS_ERROR, "error")
        return _render_index(form=form, status=400)

    if not g.identity.is_owner:
        flash(NOT_OWNER_ERROR, "error")
        return _render_index(form=form, status=403)

    repo = get_portfolio().repository_for(g.identity)
    fields = {k: v for k, v in form.items() if k != "id"}
    if form["id"]:
        error = repo.update(form["id"], fields)
        if error:
            flash(error, "error")
            return _render_index(form=form, status=400)
        flash("Project updated.", "success")
    else:
        repo.add(fields)
        # The insert runs after the debounce window; the page refreshes until it has.
        flash("Adding project...", "info")
    return redirect(url_for("site.index", _anchor="projects"))


@site.route("/projects/<project_id>/delete", methods=["POST"])
def delete_project(project_id: str):
    if not g.identity.is_owner:
        flash(NOT_OWNER_ERROR, "error")
        return redirect(url_for("site.index", _anchor="projects"))

    error = get_portfolio().repository_for(g.identity).delete(project_id)
    if error:
        flash(error, "error")
    else:
        flash("Project deleted.", "success")
    return redirect(url_for("site.index", _anchor="projects"))


@site.route("/projects/draft", methods=["POST"])
def draft_description():
    form = _form_data(request.form)
    if not g.identity.is_owner:
        flash(NOT_OWNER_ERROR, "error")
        return _render_index(form=form, status=403)

    result = get_portfolio().drafting.draft(form["title"], form["technologies"], key=g.identity.token)
    if result.ok:
        form["description"] = result.text
        return _render_index(form=form)
    return _render_index(form=form, draft_error=result.error, status=_DRAFT_STATUS.get(result.error, 400))


@site.route("/profile", methods=["POST"])
def update_profile():
    if not _manager_mode():
        flash(ACCESS_DENIED, "error")
        return redirect(url_for("site.index"))

    get_portfolio().profiles.update(
        g.identity.token,
        name=request.form.get("name"),
        tagline=request.form.get("tagline"),
        about=request.form.get("about"),
        avatar_url=request.form.get("avatar_url"),
    )
    flash("Profile updated for this session.", "success")
    return redirect(url_for("site.index"))


@site.route("/api/projects")
def api_projects():
    repo = get_portfolio().repository_for(g.identity)
    return jsonify(
        {
            "projects": [_serialize(p) for p in repo.projects],
            "tags": derive_tags(repo.projects),
            "error": repo.error,
            "state": repo.state.value,
            "loading": repo.loading,
            "pending": repo.add.pending,
        }
    )


@site.route("/api/draft", methods=["POST"])
def api_draft():
    if not g.identity.is_owner:
        return jsonify({"error": NOT_OWNER_ERROR}), 403

    payload = request.get_json(silent=True) or {}
    result = get_portfolio().drafting.draft(
        payload.get("title"), payload.get("technologies"), key=g.identity.token
    )
    if result.ok:
        return jsonify({"description": result.text, "attempts": result.attempts})
    return jsonify({"error": result.error}), _DRAFT_STATUS.get(result.error, 400)


def configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.logger.setLevel(level)


def create_app(config_name: str = "default", overrides: dict = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config[config_name])
    if overrides:
        app.config.update(overrides)

    configure_logging(app)

    app.extensions["portfolio"] = Portfolio(app)
    app.register_blueprint(site)
    app.jinja_env.globals.update(
        toggle_tag=toggle_tag,
        external_url=external_url,
        split_technologies=split_technologies,
    )
    return app


if __name__ == "__main__":
    env = os.environ.get("FLASK_ENV", "development")
    app = create_app(env)
    app.run(debug=app.config.get("DEBUG", False))
