from __future__ import annotations

import time

from conftest import OWNER, FakeResponse, FakeSession, gemini_reply
from drafting import DraftingClient, RetryPolicy
from repository import ADD_ERROR, NOT_READY_ERROR, DataServiceError

FORM = {
    "title": "Applicant Tracking System",
    "description": "Job postings, candidate registration and resume uploads.",
    "technologies": "HTML, PHP, MySQL",
    "github_url": "https://github.com/example/ats",
    "live_demo_url": "#",
}


def _enter_manager_mode(client):
    response = client.post("/manager/toggle")
    assert response.status_code == 302
    with client.session_transaction() as sess:
        assert sess["manager_mode"] is True


def _add_project(client, portfolio, **fields):
    response = client.post("/projects", data=dict(FORM, **fields))
    assert response.status_code == 302
    repo = portfolio.repositories.get(OWNER)
    assert repo.add.flush() is None
    return repo


def test_public_page_renders_sections(client) -> None:
    response = client.get("/")
    body = response.get_data(as_text=True)

    assert response.status_code == 200
    for section in ('id="hero"', 'id="about"', 'id="projects"', 'id="contact"'):
        assert section in body
    assert "Profile Management" not in body


def test_owner_can_enter_manager_mode(owner_client) -> None:
    _enter_manager_mode(owner_client)

    body = owner_client.get("/").get_data(as_text=True)
    assert "Profile Management (Manager)" in body
    assert "Add New Project" in body
    assert f"USER ID:</strong> {OWNER}" in body


def test_non_owner_is_refused_manager_mode(visitor_client) -> None:
    response = visitor_client.post("/manager/toggle", follow_redirects=True)
    body = response.get_data(as_text=True)

    assert "Access Denied" in body
    assert "Profile Management" not in body
    with visitor_client.session_transaction() as sess:
        assert sess["manager_mode"] is False


def test_toggle_twice_leaves_manager_mode(owner_client) -> None:
    _enter_manager_mode(owner_client)
    owner_client.post("/manager/toggle")
    assert "Profile Management" not in owner_client.get("/").get_data(as_text=True)


def test_add_project_through_form(owner_client, portfolio) -> None:
    repo = _add_project(owner_client, portfolio)

    assert [p["title"] for p in repo.projects] == [FORM["title"]]
    body = owner_client.get("/").get_data(as_text=True)
    assert FORM["title"] in body
    assert 'href="https://github.com/example/ats"' in body


def test_add_requires_title_description_and_technologies(owner_client, portfolio) -> None:
    response = owner_client.post("/projects", data=dict(FORM, description=""))

    assert response.status_code == 400
    assert "Title, Description, and Technologies are required." in response.get_data(as_text=True)
    assert not portfolio.repositories.get(OWNER).add.pending


def test_non_owner_cannot_add(visitor_client, portfolio) -> None:
    response = visitor_client.post("/projects", data=FORM)

    assert response.status_code == 403
    assert "SECURITY ERROR" in response.get_data(as_text=True)
    assert "xyz" not in portfolio.repositories


def test_edit_project_keeps_identifier(owner_client, portfolio) -> None:
    repo = _add_project(owner_client, portfolio)
    project_id = repo.projects[0]["id"]

    response = owner_client.post("/projects", data=dict(FORM, id=project_id, title="ATS v2"))

    assert response.status_code == 302
    assert [(p["id"], p["title"]) for p in repo.projects] == [(project_id, "ATS v2")]


def test_edit_link_prefills_form(owner_client, portfolio) -> None:
    repo = _add_project(owner_client, portfolio)
    _enter_manager_mode(owner_client)

    body = owner_client.get(f"/?edit={repo.projects[0]['id']}").get_data(as_text=True)
    assert f"Edit Project: {FORM['title']}" in body
    assert "Save Changes" in body


def test_delete_project(owner_client, portfolio) -> None:
    repo = _add_project(owner_client, portfolio)
    project_id = repo.projects[0]["id"]

    owner_client.post(f"/projects/{project_id}/delete")

    assert repo.projects == []
    data = owner_client.get("/api/projects").get_json()
    assert data["projects"] == []
    assert data["tags"] == []


def test_tag_filter_links(owner_client, portfolio) -> None:
    _add_project(owner_client, portfolio)
    _add_project(owner_client, portfolio, title="Hangman App", technologies="Java, Android Studio")

    body = owner_client.get("/?tag=Java").get_data(as_text=True)
    assert "Hangman App" in body
    assert FORM["title"] not in body.split('id="tag-filter"')[1]
    assert "Clear Filter" in body

    body = owner_client.get("/").get_data(as_text=True)
    assert "Hangman App" in body and FORM["title"] in body


def test_api_projects_reports_live_state(owner_client, portfolio) -> None:
    _add_project(owner_client, portfolio)

    data = owner_client.get("/api/projects").get_json()

    assert data["state"] == "synced"
    assert data["error"] is None
    assert data["tags"] == ["HTML", "MySQL", "PHP"]
    assert data["projects"][0]["owner_id"] == OWNER
    assert "T" in data["projects"][0]["created_at"]


def test_draft_fills_description(owner_client, portfolio) -> None:
    session = FakeSession([FakeResponse(500, {}), FakeResponse(500, {}), gemini_reply("Drafted text.")])
    portfolio.drafting = DraftingClient(
        "key", "model", session=session, policy=RetryPolicy(sleep=lambda s: None)
    )
    _enter_manager_mode(owner_client)

    response = owner_client.post("/projects/draft", data=dict(FORM, description=""))
    body = response.get_data(as_text=True)

    assert response.status_code == 200
    assert "Drafted text." in body
    assert "Failed to generate" not in body
    assert len(session.calls) == 3


def test_draft_with_empty_title_makes_no_request(owner_client, portfolio) -> None:
    session = FakeSession([])
    portfolio.drafting = DraftingClient("key", "model", session=session)

    response = owner_client.post("/api/draft", json={"title": "", "technologies": "Flask"})

    assert response.status_code == 400
    assert response.get_json()["error"] == "Please fill in the Title and Technologies fields first."
    assert session.calls == []


def test_api_draft_exhausted(owner_client, portfolio) -> None:
    portfolio.drafting = DraftingClient(
        "key", "model",
        session=FakeSession([FakeResponse(500, {})] * 3),
        policy=RetryPolicy(sleep=lambda s: None),
    )
    response = owner_client.post("/api/draft", json={"title": "ATS", "technologies": "PHP"})

    assert response.status_code == 502
    assert response.get_json()["error"] == "Failed to generate description after multiple attempts."


def test_visitor_cannot_draft(visitor_client) -> None:
    response = visitor_client.post("/api/draft", json={"title": "ATS", "technologies": "PHP"})
    assert response.status_code == 403


def test_profile_update_rewrites_page_metadata(owner_client) -> None:
    _enter_manager_mode(owner_client)
    owner_client.post("/profile", data={"name": "Jane Doe", "avatar_url": "not-a-url"})

    body = owner_client.get("/").get_data(as_text=True)
    assert "<title>Jane Doe | Full-Stack Developer Portfolio</title>" in body
    assert 'property="og:title" content="Jane Doe | Full-Stack Developer Portfolio"' in body
    assert 'property="og:type" content="website"' in body
    # Avatar without a URL falls back to the initial.
    assert 'class="avatar avatar-initial">J<' in body


def test_profile_edit_requires_manager_mode(visitor_client) -> None:
    visitor_client.post("/profile", data={"name": "Mallory"})
    assert "Mallory" not in visitor_client.get("/").get_data(as_text=True)


def test_missing_data_service_disables_data_operations(make_app) -> None:
    app = make_app(DATA_SERVICE_URL=None)
    portfolio = app.extensions["portfolio"]
    client = app.test_client()
    client.set_cookie("portfolio_user_id", OWNER)

    assert portfolio.service is None
    body = client.get("/").get_data(as_text=True)
    assert NOT_READY_ERROR in body

    # Without a data service nobody resolves as owner.
    response = client.post("/projects", data=FORM)
    assert response.status_code == 403

    data = client.get("/api/projects").get_json()
    assert data["error"] == NOT_READY_ERROR
    assert data["projects"] == []
    assert len(portfolio.repositories) == 0


def _wait_until_added(repo, timeout=5.0):
    deadline = time.monotonic() + timeout
    while repo.add.pending and time.monotonic() < deadline:
        time.sleep(0.02)
    assert not repo.add.pending


def test_added_project_appears_once_insert_has_run(make_app) -> None:
    app = make_app(CREATE_DEBOUNCE_SECONDS=0.5)
    client = app.test_client()
    client.set_cookie("portfolio_user_id", OWNER)

    body = client.post("/projects", data=FORM, follow_redirects=True).get_data(as_text=True)
    assert "Adding project..." in body
    assert "Project added." not in body
    assert 'http-equiv="refresh"' in body
    assert FORM["title"] not in body.split('id="projects"')[1]

    _wait_until_added(app.extensions["portfolio"].repositories.get(OWNER))

    body = client.get("/").get_data(as_text=True)
    assert FORM["title"] in body
    assert 'http-equiv="refresh"' not in body
    assert client.get("/api/projects").get_json()["pending"] is False


def test_failed_insert_shows_error_on_refreshed_page(make_app, monkeypatch) -> None:
    app = make_app(CREATE_DEBOUNCE_SECONDS=0.5)
    portfolio = app.extensions["portfolio"]
    client = app.test_client()
    client.set_cookie("portfolio_user_id", OWNER)

    def failing_insert(owner_id, values):
        raise DataServiceError("permission denied for table projects")

    monkeypatch.setattr(portfolio.service, "insert_project", failing_insert)
    client.post("/projects", data=FORM)
    _wait_until_added(portfolio.repositories.get(OWNER))

    body = client.get("/").get_data(as_text=True)
    assert ADD_ERROR in body
    assert 'http-equiv="refresh"' not in body


def test_visitors_do_not_hold_live_views(client, portfolio) -> None:
    client.get("/")
    client.get("/api/projects")

    assert len(portfolio.repositories) == 0
    assert portfolio.feed.active_count() == 0
