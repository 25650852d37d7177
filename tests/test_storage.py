import os
import unittest

from chopphub.errors import NotFoundError, ValidationError
from chopphub.storage import LocalFileStorage, belongs_to_company, company_file_path
from tests.helpers.temp_db import TempDbSandbox


class LocalFileStorageTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="storage")
        self.storage = LocalFileStorage(self._temp_db.storage_dir, "/files/")

    def tearDown(self) -> None:
        self._temp_db.cleanup()

    def test_upload_and_download(self) -> None:
        stored = self.storage.upload("nfe-files/xml/REF1.xml", b"<nfe/>", "application/xml")

        self.assertEqual(stored, "nfe-files/xml/REF1.xml")
        self.assertTrue(self.storage.exists("nfe-files/xml/REF1.xml"))
        self.assertEqual(self.storage.download("nfe-files/xml/REF1.xml"), b"<nfe/>")
        self.assertTrue(os.path.isfile(self.storage.full_path("nfe-files/xml/REF1.xml")))
        self.assertEqual(self.storage.public_url("nfe-files/xml/REF1.xml"), "/files/nfe-files/xml/REF1.xml")

    def test_missing_file(self) -> None:
        self.assertFalse(self.storage.exists("nfe-files/pdf/REF9.pdf"))
        with self.assertRaises(NotFoundError) as ctx:
            self.storage.download("nfe-files/pdf/REF9.pdf")
        self.assertEqual(ctx.exception.code, "file_not_found")

    def test_paths_cannot_escape_root(self) -> None:
        with self.assertRaises(ValidationError):
            self.storage.upload("../fora.txt", b"x")
        with self.assertRaises(ValidationError):
            self.storage.download("")


class CompanyFilePathTest(unittest.TestCase):
    def test_paths_are_partitioned_by_company(self) -> None:
        path = company_file_path("nfe-files", "empresa-a", "xml", "REF1.xml")
        self.assertEqual(path, "nfe-files/empresa-a/xml/REF1.xml")
        self.assertTrue(belongs_to_company(path, "empresa-a"))
        self.assertFalse(belongs_to_company(path, "empresa-b"))

    def test_traversal_cannot_reach_another_company(self) -> None:
        self.assertFalse(belongs_to_company("nfe-files/empresa-a/../empresa-b/xml/REF1.xml", "empresa-a"))
        self.assertFalse(belongs_to_company("nfe-files/xml/REF1.xml", "empresa-a"))
        self.assertFalse(belongs_to_company("", "empresa-a"))


if __name__ == "__main__":
    unittest.main()
