"""
Unit tests for archive ingestion (zip → single KML document).
"""

import pytest

from credit_claims.archive_service import find_markup_entry, read_markup
from credit_claims.errors import ArchiveError, NoMarkupFileFound, MultipleMarkupFilesFound

from tests.helpers import make_kml, make_zip


class TestFindMarkupEntry:
    def test_single_kml_entry(self, site_kml):
        content = make_zip({"readme.txt": "hello", "site.kml": site_kml})
        name, text = find_markup_entry(content)
        assert name == "site.kml"
        assert text == site_kml

    def test_kml_in_subfolder(self, site_kml):
        name, _ = find_markup_entry(make_zip({"export/site.kml": site_kml}))
        assert name == "export/site.kml"

    def test_extension_is_case_insensitive(self, site_kml):
        name, _ = find_markup_entry(make_zip({"SITE.KML": site_kml}))
        assert name == "SITE.KML"

    def test_no_kml_raises(self):
        with pytest.raises(NoMarkupFileFound):
            find_markup_entry(make_zip({"site.geojson": "{}", "notes.txt": "x"}))

    def test_no_kml_is_an_archive_error(self):
        with pytest.raises(ArchiveError):
            find_markup_entry(make_zip({"notes.txt": "x"}))

    def test_multiple_kml_rejected(self, site_kml):
        content = make_zip({"a.kml": site_kml, "b.kml": site_kml})
        with pytest.raises(MultipleMarkupFilesFound) as exc_info:
            find_markup_entry(content)
        assert exc_info.value.names == ["a.kml", "b.kml"]

    def test_macos_resource_forks_ignored(self, site_kml):
        content = make_zip({
            "site.kml": site_kml,
            "__MACOSX/._site.kml": b"\x00\x05\x16\x07",
        })
        name, _ = find_markup_entry(content)
        assert name == "site.kml"

    def test_not_a_zip(self):
        with pytest.raises(ArchiveError, match="not a valid zip"):
            find_markup_entry(b"definitely not a zip")

    def test_utf8_bom_stripped(self):
        kml = make_kml(name="Forêt")
        _, text = find_markup_entry(make_zip({"site.kml": b"\xef\xbb\xbf" + kml.encode("utf-8")}))
        assert text.startswith("<?xml")
        assert "Forêt" in text


class TestReadMarkup:
    def test_zip_upload(self, site_zip, site_kml):
        assert read_markup("site.zip", site_zip) == site_kml

    def test_kmz_upload(self, site_kml):
        assert read_markup("site.kmz", make_zip({"doc.kml": site_kml})) == site_kml

    def test_bare_kml_upload(self, site_kml):
        assert read_markup("Site.KML", site_kml.encode("utf-8")) == site_kml

    def test_unsupported_extension(self, site_kml):
        with pytest.raises(ArchiveError, match="Invalid file type"):
            read_markup("site.geojson", site_kml.encode("utf-8"))
