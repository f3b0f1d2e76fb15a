"""
Integration tests for the professor portal.

Tests cover:
- People, venue and category lookups
- Revision notifications and marking them read
- Publication listing, creation, detail and deletion
- JSON and multipart edits (abstract operations, PDF upload and removal)
- Review comments, status history and the PDF report
"""

import pytest
from datetime import datetime, timezone

from botocore.exceptions import ClientError

from pubportal.models.auth import Role
from pubportal.models.publication import PublicationCreateRequest
from tests.factories import make_author, make_publication


@pytest.fixture
def professor(login_as):
    return login_as(Role.PROFESSOR, user_id=7, username="somchai")


@pytest.fixture
def existing(repos):
    """Publication 10 as stored, echoed back by update_publication."""
    before = make_publication(abstract="Rice yield.", file_path="7/111-old.pdf", has_pdf=True)
    repos.publications.get_publication.return_value = before
    repos.publications.update_publication.side_effect = lambda pub_id, updates, *args, **kwargs: {**before, **updates}
    return before


# ============================================================================
# LOOKUPS
# ============================================================================


class TestLookups:
    """Test lookup endpoints."""

    def test_people(self, professor, repos):
        """Test author suggestions with a clamped limit."""
        repos.people.search_people.return_value = [{"person_id": 1, "full_name": "Anan"}]

        response = professor.get("/api/professor/people", params={"q": " an ", "limit": "500"})

        assert response.json() == {"ok": True, "data": [{"person_id": 1, "full_name": "Anan"}]}
        repos.people.search_people.assert_awaited_once_with("an", limit=50)

    def test_people_without_query(self, professor, repos):
        """Test an empty query returns nothing without a lookup."""
        assert professor.get("/api/professor/people").json() == {"ok": True, "data": []}
        repos.people.search_people.assert_not_awaited()

    def test_venues(self, professor, repos):
        """Test the venue listing."""
        repos.people.list_venues.return_value = [{"venue_id": 1, "venue_name": "Agritech"}]

        response = professor.get("/api/professor/venues", params={"q": "agri", "limit": "5"})

        assert response.json()["data"][0]["venue_name"] == "Agritech"
        repos.people.list_venues.assert_awaited_once_with("agri", limit=5)

    def test_categories(self, professor, repos):
        """Test active categories by name by default."""
        repos.categories.list_categories.return_value = []

        professor.get("/api/professor/publications/categories")

        repos.categories.list_categories.assert_awaited_once_with(status="ACTIVE", order_by_name=True)


# ============================================================================
# NOTIFICATIONS
# ============================================================================


class TestNotifications:
    """Test professor notifications."""

    def test_revision_requests(self, professor, repos):
        """Test items carry the latest reviewer comment and the unread count."""
        repos.notifications.revision_requests.return_value = [
            make_publication(pub_id=10, status="needs_revision"),
            make_publication(pub_id=11, status="needs_revision"),
        ]
        repos.history.latest_review_comments.return_value = {10: "fix references"}
        repos.notifications.count_unread.return_value = 3

        response = professor.get("/api/professor/notifications")

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert body["unread"] == 3
        assert body["items"][0]["latest_comment"] == "fix references"
        assert body["items"][1]["latest_comment"] is None
        repos.notifications.revision_requests.assert_awaited_once_with(7)
        repos.history.latest_review_comments.assert_awaited_once_with([10, 11])

    def test_mark_read(self, professor, repos):
        """Test marking read by publication."""
        repos.notifications.mark_read.return_value = 2

        response = professor.post("/api/professor/notifications/read", json={"pub_id": 10})

        assert response.json() == {"ok": True, "updated": 2}
        repos.notifications.mark_read.assert_awaited_once_with(7, noti_id=None, pub_id=10)

    def test_mark_read_requires_target(self, professor, repos):
        """Test noti_id or pub_id is required."""
        response = professor.post("/api/professor/notifications/read", json={})

        assert response.status_code == 400
        assert response.json() == {"ok": False, "message": "require noti_id or pub_id"}


# ============================================================================
# PUBLICATIONS
# ============================================================================


class TestPublications:
    """Test listing, creation, detail and deletion."""

    def test_list(self, professor, repos):
        """Test professor list filters."""
        repos.publications.search_publications.return_value = ([make_publication()], 1)

        response = professor.get(
            "/api/professor/publications?mine=1&hasPdf=1&withStudents=1&status=Published&level=NATIONAL"
            "&yearFrom=2020&yearTo=2024&page=3"
        )

        assert response.json()["total"] == 1
        pub_filter = repos.publications.search_publications.await_args.args[0]
        assert pub_filter.owner_user_id == 7
        assert pub_filter.has_pdf is True
        assert pub_filter.only_students is True
        assert pub_filter.statuses == ["published"]
        assert pub_filter.levels == ["NATIONAL"]
        assert pub_filter.page == 3
        assert pub_filter.page_size == 10

    def test_list_without_flags(self, professor, repos):
        """Test unset flags do not filter."""
        repos.publications.search_publications.return_value = ([], 0)

        professor.get("/api/professor/publications", params={"hasPdf": "0"})

        pub_filter = repos.publications.search_publications.await_args.args[0]
        assert pub_filter.owner_user_id is None
        assert pub_filter.has_pdf is None

    def test_create(self, professor, repos):
        """Test creation with authors and categories."""
        repos.publications.create_publication.return_value = 42

        response = professor.post("/api/professor/publications", json={
            "pub_name": "Rice",
            "year": 2024,
            "status": "Under Review",
            "authors": [{"full_name": " Anan ", "role": "LEAD", "email": "Anan@X.org"}],
            "categories": ["AI", "AI", " "],
        })

        assert response.status_code == 201
        assert response.json() == {"ok": True, "pub_id": 42}
        body, user_id = repos.publications.create_publication.await_args.args
        assert isinstance(body, PublicationCreateRequest)
        assert user_id == 7
        assert body.status == "under_review"
        assert body.authors[0].full_name == "Anan"
        assert body.authors[0].email == "anan@x.org"
        assert body.categories == ["AI"]

    def test_create_invalid_author(self, professor, repos):
        """Test a blank author name is a 400."""
        response = professor.post("/api/professor/publications", json={"authors": [{"full_name": "  "}]})

        assert response.status_code == 400
        repos.publications.create_publication.assert_not_awaited()

    def test_detail_with_edit_log(self, professor, repos):
        """Test the detail includes the newest edit-log rows."""
        repos.publications.get_publication.return_value = make_publication()
        repos.publications.authors_for.return_value = {10: [make_author("Anan")]}
        repos.publications.categories_for.return_value = {}
        repos.history.edit_logs_for_publication.return_value = [{"edit_id": 1, "field_name": "year"}]

        data = professor.get("/api/professor/publications/10").json()["data"]

        assert data["edit_log"] == [{"edit_id": 1, "field_name": "year"}]
        repos.history.edit_logs_for_publication.assert_awaited_once_with(10, newest_first=True, limit=50)

    def test_delete(self, professor, repos):
        """Test deletion removes the stored file."""
        repos.publications.delete_publication.return_value = {"pub_id": 10, "file_path": "7/111-old.pdf"}

        assert professor.delete("/api/professor/publications/10").json() == {"ok": True}
        repos.storage.delete_objects.assert_awaited_once_with("publication-files", ["7/111-old.pdf"])

    def test_delete_storage_error(self, professor, repos):
        """Test a storage error after deletion is only logged."""
        repos.publications.delete_publication.return_value = {"pub_id": 10, "file_path": "7/111-old.pdf"}
        repos.storage.delete_objects.side_effect = ClientError({"Error": {"Code": "500"}}, "DeleteObjects")

        assert professor.delete("/api/professor/publications/10").status_code == 200

    def test_delete_missing(self, professor, repos):
        """Test deleting an unknown publication is a 404."""
        repos.publications.delete_publication.return_value = None

        assert professor.delete("/api/professor/publications/10").status_code == 404


# ============================================================================
# EDITS
# ============================================================================


class TestEdit:
    """Test PATCH /api/professor/publications/{id}."""

    def test_json_edit(self, professor, repos, existing):
        """Test changed columns are diffed into the edit log."""
        response = professor.patch("/api/professor/publications/10", json={"title": "New Title", "year": 2023})

        assert response.status_code == 200
        assert response.json()["data"]["pub_name"] == "New Title"
        args, kwargs = repos.publications.update_publication.call_args
        assert args[0] == 10
        assert args[2] == 7
        changes = args[3]
        assert [(c.field, c.old_value, c.new_value) for c in changes] == [
            ("pub_name", "Graph Neural Networks for Rice Yield", "New Title"),
        ]
        assert kwargs["authors"] is None
        assert kwargs["category_ids"] is None
        assert "history" not in response.json()

    def test_abstract_append(self, professor, repos, existing):
        """Test abstract operations apply to the stored abstract."""
        professor.patch("/api/professor/publications/10", json={"abstract_append": " Second sentence."})

        updates = repos.publications.update_publication.call_args.args[1]
        assert updates["abstract"] == "Rice yield. Second sentence."

    def test_authors_and_categories(self, professor, repos, existing):
        """Test author replacement and category names resolved to IDs."""
        repos.categories.ids_for_names.return_value = [1, 2]

        professor.patch("/api/professor/publications/10", json={
            "authors_json": [{"full_name": "Anan", "role": "LEAD"}],
            "categories": ["AI", "Energy"],
        })

        kwargs = repos.publications.update_publication.call_args.kwargs
        assert kwargs["authors"][0].full_name == "Anan"
        assert kwargs["category_ids"] == [1, 2]
        repos.categories.ids_for_names.assert_awaited_once_with(["AI", "Energy"])

    def test_status_change(self, professor, repos, existing):
        """Test a status in UI spelling is stored normalised."""
        professor.patch("/api/professor/publications/10", json={"status": "Published"})

        changes = repos.publications.update_publication.call_args.args[3]
        assert [(c.field, c.new_value) for c in changes] == [("status", "published")]

    def test_remove_pdf(self, professor, repos, existing):
        """Test removing the PDF clears file_path and deletes the old object."""
        response = professor.patch("/api/professor/publications/10", json={"remove_pdf": True})

        assert response.status_code == 200
        updates = repos.publications.update_publication.call_args.args[1]
        assert updates["file_path"] is None
        assert updates["has_pdf"] is False
        repos.storage.delete_objects.assert_awaited_once_with("publication-files", ["7/111-old.pdf"])

    def test_multipart_pdf(self, professor, repos, existing):
        """Test a multipart upload replaces the PDF and reports the history."""
        response = professor.patch(
            "/api/professor/publications/10",
            data={"title": "With PDF"},
            files={"pdf": ("final paper.pdf", b"%PDF-1.7", "application/pdf")}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["has_pdf"] is True
        assert body["file_path"].startswith("10/")
        assert body["file_path"].endswith("-final_paper.pdf")
        assert {entry["field"] for entry in body["history"]} == {"pub_name", "file_path"}

        bucket, key, data = repos.storage.upload.await_args.args
        assert (bucket, data) == ("publication-files", b"%PDF-1.7")
        assert key == body["file_path"]
        repos.storage.delete_objects.assert_awaited_once_with("publication-files", ["7/111-old.pdf"])

    def test_multipart_rejects_non_pdf(self, professor, repos, existing):
        """Test non-PDF uploads are a 400 before anything is stored."""
        response = professor.patch(
            "/api/professor/publications/10",
            files={"pdf": ("notes.docx", b"PK", "application/vnd.openxmlformats-officedocument.wordprocessingml.document")}
        )

        assert response.status_code == 400
        assert response.json()["message"] == "only PDF files are accepted"
        repos.storage.upload.assert_not_awaited()

    def test_empty_edit(self, professor, repos, existing):
        """Test an edit without fields is a 400."""
        response = professor.patch("/api/professor/publications/10", json={})

        assert response.status_code == 400
        assert response.json()["message"] == "no fields to update"
        repos.publications.update_publication.assert_not_called()

    def test_invalid_json(self, professor, repos):
        """Test a malformed body is a 400."""
        response = professor.patch(
            "/api/professor/publications/10",
            content=b"{not json",
            headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json()["message"] == "invalid JSON body"

    def test_bad_authors(self, professor, repos, existing):
        """Test malformed author lists are a 400."""
        response = professor.patch("/api/professor/publications/10", json={"authors_json": "{oops"})

        assert response.status_code == 400
        repos.publications.update_publication.assert_not_called()

    def test_missing_publication(self, professor, repos):
        """Test editing an unknown publication is a 404."""
        repos.publications.get_publication.return_value = None

        response = professor.patch("/api/professor/publications/10", json={"title": "x"})

        assert response.status_code == 404

    def test_pdf_removed_when_row_vanishes(self, professor, repos, existing):
        """Test the new upload is deleted again when the update finds no row."""
        repos.publications.update_publication.side_effect = None
        repos.publications.update_publication.return_value = None

        response = professor.patch(
            "/api/professor/publications/10",
            files={"pdf": ("paper.pdf", b"%PDF-1.7", "application/pdf")}
        )

        assert response.status_code == 404
        _, key, _ = repos.storage.upload.await_args.args
        repos.storage.delete_objects.assert_awaited_once_with("publication-files", [key])

    def test_pdf_removed_when_update_fails(self, professor, repos, existing):
        """Test the new upload is deleted again when the update raises."""
        repos.publications.update_publication.side_effect = RuntimeError("connection lost")

        response = professor.patch(
            "/api/professor/publications/10",
            files={"pdf": ("paper.pdf", b"%PDF-1.7", "application/pdf")}
        )

        assert response.status_code == 500
        _, key, _ = repos.storage.upload.await_args.args
        assert key.startswith("10/")
        repos.storage.delete_objects.assert_awaited_once_with("publication-files", [key])

    @pytest.mark.parametrize("field", ["abstract", "abstract_prepend", "abstract_append", "abstract_delete"])
    def test_non_text_abstract_ops(self, professor, repos, existing, field):
        """Test abstract operations only take text."""
        response = professor.patch("/api/professor/publications/10", json={field: 123})

        assert response.status_code == 400
        assert response.json()["message"] == f"{field} must be text"
        repos.publications.update_publication.assert_not_called()


# ============================================================================
# TIMELINE AND REPORT
# ============================================================================


class TestTimeline:
    """Test comments, status history and the report."""

    def test_comments_prefer_latest_review_comment(self, professor, repos):
        """Test each entry carries the latest comment, falling back to the note."""
        changed_at = datetime(2024, 3, 1, tzinfo=timezone.utc)
        repos.history.status_history.return_value = [
            {"history_id": 2, "changed_at": changed_at, "changer_name": "Nok Staff",
             "changer_role": "STAFF", "note": "see refs", "status": "needs_revision"},
            {"history_id": 1, "changed_at": changed_at, "changer_name": None, "changer_username": "somchai",
             "changer_role": "PROFESSOR", "note": None, "status": "under_review"},
        ]
        repos.history.latest_review_comments.return_value = {10: "fix references"}

        data = professor.get("/api/professor/publications/10/comments").json()["data"]

        assert [item["text"] for item in data] == ["fix references", "fix references"]
        assert data[0]["author_name"] == "Nok Staff"
        assert data[1]["author_name"] == "somchai"
        assert data[0]["status_tag"] == "needs_revision"

    def test_comments_fall_back_to_note(self, professor, repos):
        """Test the note is used without any review comment."""
        repos.history.status_history.return_value = [
            {"history_id": 1, "changed_at": None, "note": "submitted", "status": "under_review"},
        ]
        repos.history.latest_review_comments.return_value = {}

        data = professor.get("/api/professor/publications/10/comments").json()["data"]

        assert data[0]["text"] == "submitted"

    def test_status_history(self, professor, repos):
        """Test the raw status history."""
        repos.history.status_history.return_value = [{"history_id": 1, "status": "draft"}]

        response = professor.get("/api/professor/publications/10/status-history")

        assert response.json() == {"ok": True, "data": [{"history_id": 1, "status": "draft"}]}
        repos.history.status_history.assert_awaited_once_with(10)

    def test_report(self, professor, repos):
        """Test the PDF report with match-all authors and categories."""
        repos.publications.list_with_relations.return_value = (
            [make_publication(authors=[make_author("Anan")], categories=["AI"])],
            1,
        )

        response = professor.get("/api/professor/publications/report?author=Anan,Bua&cat=AI&cat=Energy&leaderOnly=1")

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == 'attachment; filename="publications-report.pdf"'
        assert response.content.startswith(b"%PDF")

        pub_filter = repos.publications.list_with_relations.await_args.args[0]
        assert pub_filter.authors == ["Anan", "Bua"]
        assert pub_filter.categories == ["AI", "Energy"]
        assert pub_filter.categories_match_all is True
        assert pub_filter.lead_only is True
        assert pub_filter.owner_user_id == 7
