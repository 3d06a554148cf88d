import unittest
from unittest.mock import patch

from sqlalchemy.exc import IntegrityError

from dokasah.db import SqlDbClient
from dokasah.errors import SlugConflict


class SqlDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL client logic.
    """

    def setUp(self):
        self.db = SqlDbClient("sqlite+pysqlite:///:memory:")
        self.db.save_form_structure("kyc", {"fields": []})
        self.user = self.db.upsert_user("a@x.com", "Alice")
        self.config = self.db.create_form_config("kyc", "a@x.com", "slug-one")

    def tearDown(self):
        self.db.close()

    def test_upsert_user_keeps_role_and_refreshes_name(self):
        self.db.set_user_role("a@x.com", "admin")
        again = self.db.upsert_user("a@x.com", "Alice B.", "https://img/1.png")
        self.assertEqual(again.id, self.user.id)
        self.assertEqual(again.role, "admin")
        self.assertEqual(again.name, "Alice B.")
        self.assertEqual(again.profile_pictures, "https://img/1.png")
        self.assertFalse(self.db.set_user_role("nobody@x.com", "admin"))

    def test_duplicate_slug_raises_conflict(self):
        with self.assertRaises(SlugConflict):
            self.db.create_form_config("kyc", "b@x.com", "slug-one")
        other = self.db.create_form_config("kyc", "b@x.com", "slug-two")
        self.assertNotEqual(other.id, self.config.id)

    def test_upsert_submission_falls_back_to_update_on_conflict(self):
        self.db.upsert_submission(self.config.id, self.user.id, {"step": 1})
        real_find = SqlDbClient._find_submission
        calls = []

        def racing_find(client, session, form_config_id, user_id):
            # Pretend the row did not exist yet on the first lookup.
            calls.append(form_config_id)
            if len(calls) == 1:
                return None
            return real_find(client, session, form_config_id, user_id)

        with patch.object(SqlDbClient, "_find_submission", racing_find):
            saved = self.db.upsert_submission(
                self.config.id, self.user.id, {"step": 2}, status="submitted"
            )

        self.assertEqual(len(calls), 2)
        self.assertEqual(saved.data, {"step": 2})
        self.assertEqual(saved.status, "submitted")
        overview = self.db.list_form_overview()
        self.assertEqual(len(overview), 1)
        self.assertEqual(overview[0].status, "submitted")

    def test_upsert_submission_reraises_when_no_row_to_update(self):
        self.db.upsert_submission(self.config.id, self.user.id, {"step": 1})

        def never_found(client, session, form_config_id, user_id):
            return None

        with patch.object(SqlDbClient, "_find_submission", never_found):
            with self.assertRaises(IntegrityError):
                self.db.upsert_submission(self.config.id, self.user.id, {"step": 2})

        kept = self.db.get_submission(self.config.id, self.user.id)
        self.assertEqual(kept.data, {"step": 1})

    def test_delete_rolls_back_when_second_delete_fails(self):
        self.db.upsert_submission(self.config.id, self.user.id, {"step": 1})
        with patch(
            "dokasah.db._delete_config_row", side_effect=RuntimeError("boom")
        ):
            with self.assertRaises(RuntimeError):
                self.db.delete_form_config(self.config.id)

        self.assertIsNotNone(self.db.get_form_config("slug-one"))
        self.assertIsNotNone(self.db.get_submission(self.config.id, self.user.id))

        self.db.delete_form_config(self.config.id)
        self.assertIsNone(self.db.get_form_config("slug-one"))
        self.assertIsNone(self.db.get_submission(self.config.id, self.user.id))

    def test_folder_name_upsert_and_lookup(self):
        self.assertTrue(self.db.upsert_folder_name(self.config.id, "slug-one", "KTP"))
        self.assertFalse(
            self.db.upsert_folder_name(self.config.id, "slug-one", "KTP Alice")
        )
        self.assertEqual(self.db.get_folder_name("slug-one").display_name, "KTP Alice")
        self.assertEqual(
            self.db.get_folder_names(["slug-one", "slug-missing"]),
            {"slug-one": "KTP Alice"},
        )
        self.assertEqual(self.db.get_folder_names([]), {})

    def test_list_slugs_for_email(self):
        self.db.create_form_config("kyc", "b@x.com", "slug-two")
        self.assertEqual(self.db.list_slugs_for_email("a@x.com"), {"slug-one"})


if __name__ == "__main__":
    unittest.main()
