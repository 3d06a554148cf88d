import unittest

from dokasah.access import Principal
from dokasah.config import Settings
from dokasah.db import InMemoryDbClient
from dokasah.errors import Forbidden, NotFound
from dokasah.folders import FolderNames
from dokasah.reconciler import StorageReconciler, normalize_prefix
from dokasah.storage import InMemoryStorageClient

BASE = "dokasah/berkas"


class StorageReconcilerTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.storage = InMemoryStorageClient()
        self.settings = Settings(
            jwt_secret="test-secret",
            storage_base_prefix=BASE,
            cdn_base_url="https://cdn.test/file/bucket/",
        )
        self.folder_names = FolderNames(self.db)
        self.reconciler = StorageReconciler(
            self.db, self.storage, self.settings, self.folder_names
        )
        self.admin = Principal(id=1, email="root@x.com", role="admin")
        self.alice = Principal(id=2, email="a@x.com")
        self.bob = Principal(id=3, email="b@x.com")

        self.alice_form = self.db.create_form_config("kyc", "a@x.com", "slugalice")
        self.bob_form = self.db.create_form_config("kyc", "b@x.com", "slugbob")
        for key in (
            f"{BASE}/",
            f"{BASE}/readme.txt",
            f"{BASE}/slugalice/",
            f"{BASE}/slugalice/ktp.jpg",
            f"{BASE}/slugalice/npwp.pdf",
            f"{BASE}/slugbob/ktp.jpg",
            f"{BASE}/orphan/ktp.jpg",
        ):
            self.storage.put_bytes(key, b"x" * 3, "application/octet-stream")

    def test_admin_sees_every_folder_and_loose_files(self):
        listing = self.reconciler.list_folder(BASE, self.admin)
        self.assertEqual(
            [folder.slug for folder in listing.folders],
            ["orphan", "slugalice", "slugbob"],
        )
        self.assertEqual([entry.key for entry in listing.files], ["readme.txt"])
        readme = listing.files[0]
        self.assertEqual(readme.size, 3)
        self.assertEqual(readme.url, f"https://cdn.test/file/bucket/{BASE}/readme.txt")

    def test_folders_are_not_duplicated(self):
        listing = self.reconciler.list_folder(BASE + "/", self.admin)
        slugs = [folder.slug for folder in listing.folders]
        self.assertEqual(len(slugs), len(set(slugs)))

    def test_empty_path_segments_are_not_folders(self):
        self.storage.put_bytes(f"{BASE}//stray.jpg", b"x", "image/jpeg")
        listing = self.reconciler.list_folder(BASE, self.admin)
        self.assertEqual(
            [folder.slug for folder in listing.folders],
            ["orphan", "slugalice", "slugbob"],
        )
        self.assertEqual([entry.key for entry in listing.files], ["readme.txt"])

    def test_display_names_default_to_slug(self):
        self.folder_names.rename("slugalice", "Alice KTP", self.admin)
        listing = self.reconciler.list_folder(BASE, self.admin)
        names = {folder.slug: folder.name for folder in listing.folders}
        self.assertEqual(names["slugalice"], "Alice KTP")
        self.assertEqual(names["slugbob"], "slugbob")

    def test_non_admin_only_sees_owned_folders(self):
        listing = self.reconciler.list_folder(BASE, self.alice)
        self.assertEqual([folder.slug for folder in listing.folders], ["slugalice"])
        self.assertEqual([entry.key for entry in listing.files], ["readme.txt"])

    def test_non_admin_listing_inside_own_folder(self):
        listing = self.reconciler.list_folder(f"/{BASE}/slugalice", self.alice)
        self.assertEqual(
            sorted(entry.key for entry in listing.files), ["ktp.jpg", "npwp.pdf"]
        )
        self.assertEqual(listing.folders, [])

    def test_non_admin_cannot_list_other_folder(self):
        with self.assertRaises(Forbidden):
            self.reconciler.list_folder(f"{BASE}/slugbob", self.alice)
        listing = self.reconciler.list_folder(f"{BASE}/slugbob", self.bob)
        self.assertEqual([entry.key for entry in listing.files], ["ktp.jpg"])

    def test_empty_prefix_listing(self):
        listing = self.reconciler.list_folder("nothing/here", self.admin)
        self.assertEqual(listing.files, [])
        self.assertEqual(listing.folders, [])

    def test_normalize_prefix(self):
        self.assertEqual(normalize_prefix("a/b"), "a/b/")
        self.assertEqual(normalize_prefix("/a/b/"), "a/b/")
        self.assertEqual(normalize_prefix(""), "")


class FolderNamesTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.folder_names = FolderNames(self.db)
        self.admin = Principal(id=1, email="root@x.com", role="admin")
        self.config = self.db.create_form_config("kyc", "a@x.com", "slugalice")

    def test_rename_upserts_latest_name(self):
        self.assertTrue(self.folder_names.rename("slugalice", "First", self.admin))
        self.assertFalse(self.folder_names.rename("slugalice", "Second", self.admin))
        self.assertEqual(
            self.folder_names.resolve_names(["slugalice", "other"]),
            {"slugalice": "Second"},
        )
        self.assertEqual(
            self.db.get_folder_name("slugalice").form_config_id, self.config.id
        )

    def test_rename_unknown_slug(self):
        with self.assertRaises(NotFound):
            self.folder_names.rename("missing", "Name", self.admin)

    def test_rename_requires_admin(self):
        owner = Principal(id=2, email="a@x.com")
        with self.assertRaises(Forbidden):
            self.folder_names.rename("slugalice", "Mine", owner)


if __name__ == "__main__":
    unittest.main()
