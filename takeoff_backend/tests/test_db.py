import unittest

from sqlalchemy import func, select

from takeoff_backend.db import (
    IN_MEMORY_DATABASE_URL,
    Database,
    PdfRow,
    ProjectRow,
    UserRow,
    delete_owned_project,
    insert_pdf,
    insert_project,
    normalize_database_url,
    update_owned_project,
)
from takeoff_backend.errors import ValidationError


class DatabaseTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the store logic.
    """

    def setUp(self):
        self.db = Database(IN_MEMORY_DATABASE_URL)
        self.db.init_schema()
        self.user = self.db.create_user("a@x.com", "hash")

    def tearDown(self):
        self.db.dispose()

    def count(self, model) -> int:
        with self.db.Session() as session:
            return session.execute(select(func.count()).select_from(model)).scalar_one()

    def test_init_schema_is_idempotent(self):
        self.db.init_schema()
        self.assertEqual(self.count(UserRow), 1)

    def test_duplicate_email_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.db.create_user("a@x.com", "other-hash")
        self.assertEqual(self.count(UserRow), 1)

    def test_get_user_by_email(self):
        user = self.db.get_user_by_email("a@x.com")
        self.assertEqual(user.id, self.user.id)
        self.assertEqual(user.password_hash, "hash")
        self.assertIsNone(self.db.get_user_by_email("b@x.com"))

    def test_deleting_project_cascades_to_pdfs(self):
        with self.db.transaction() as session:
            project = insert_project(session, self.user.id, "Site A", {})
            for name in ("a.pdf", "b.pdf"):
                insert_pdf(
                    session,
                    project.id,
                    name=name,
                    file_url=f"memory://{name}",
                    file_size=10,
                )
            project_id = project.id
        self.assertEqual(self.count(PdfRow), 2)

        with self.db.transaction() as session:
            self.assertEqual(delete_owned_project(session, project_id, self.user.id), 1)
        self.assertEqual(self.count(ProjectRow), 0)
        self.assertEqual(self.count(PdfRow), 0)

    def test_owner_filter_on_update_and_delete(self):
        other = self.db.create_user("b@x.com", "hash")
        with self.db.transaction() as session:
            project_id = insert_project(session, self.user.id, "Site A", {}).id

        with self.db.transaction() as session:
            self.assertEqual(
                update_owned_project(session, project_id, other.id, name="Stolen"), 0
            )
            self.assertEqual(delete_owned_project(session, project_id, other.id), 0)
        self.assertEqual(self.count(ProjectRow), 1)

    def test_transaction_rolls_back_on_error(self):
        with self.assertRaises(RuntimeError):
            with self.db.transaction() as session:
                insert_project(session, self.user.id, "Site A", {})
                raise RuntimeError("boom")
        self.assertEqual(self.count(ProjectRow), 0)

    def test_normalize_database_url(self):
        self.assertEqual(
            normalize_database_url("postgres://u:p@h/db"), "postgresql+psycopg://u:p@h/db"
        )
        self.assertEqual(
            normalize_database_url("postgresql://u:p@h/db"),
            "postgresql+psycopg://u:p@h/db",
        )
        self.assertEqual(normalize_database_url(IN_MEMORY_DATABASE_URL), IN_MEMORY_DATABASE_URL)


if __name__ == "__main__":
    unittest.main()
