"""Tests for storage folder and file name sanitization."""

import pytest

from savclaims.utils.sanitize import sanitize_file_name, sanitize_folder_name


class TestFolderName:
    def test_keeps_safe_characters(self):
        assert sanitize_folder_name("SAV_585-25S30") == "SAV_585-25S30"

    def test_replaces_unsafe_characters(self):
        assert sanitize_folder_name("SAV 585/25.30") == "SAV_585_25_30"
        assert sanitize_folder_name("../etc") == "___etc"

    def test_truncates_to_100(self):
        assert len(sanitize_folder_name("A" * 150)) == 100

    @pytest.mark.parametrize("value", [None, "", 42, ["SAV"]])
    def test_rejects_non_strings_and_empty(self, value):
        assert sanitize_folder_name(value) is None


class TestFileName:
    def test_plain_name_unchanged(self):
        assert sanitize_file_name("photo_1.jpg") == "photo_1.jpg"

    def test_forbidden_characters_replaced(self):
        assert sanitize_file_name('facture: n°12?.pdf') == "facture_ n°12_.pdf"
        assert sanitize_file_name("a|b#c%d&e.png") == "a_b_c_d_e.png"

    def test_control_characters_and_emoji_removed(self):
        assert sanitize_file_name("photo\x00\x1f \U0001F600 test.JPG") == "photo test.JPG"

    def test_whitespace_collapsed(self):
        assert sanitize_file_name("  caisse    abimée  .jpg") == "caisse abimée.jpg"

    def test_leading_and_trailing_junk_trimmed(self):
        assert sanitize_file_name("...hidden.txt") == "hidden.txt"
        assert sanitize_file_name("name. .txt") == "name.txt"

    def test_accents_kept_and_normalized(self):
        assert sanitize_file_name("e\u0301te\u0301.jpg") == "\u00e9t\u00e9.jpg"

    def test_length_limit_keeps_extension(self):
        result = sanitize_file_name("a" * 300 + ".jpeg")
        assert len(result) == 200
        assert result.endswith(".jpeg")

    def test_empty_base_gets_generated_name(self):
        result = sanitize_file_name("\U0001F600.png")
        assert result.startswith("fichier_")
        assert result.endswith(".png")

    def test_leading_dot_is_not_an_extension(self):
        assert sanitize_file_name(".env") == "env"

    @pytest.mark.parametrize("value", [None, "", 3.14])
    def test_rejects_non_strings_and_empty(self, value):
        assert sanitize_file_name(value) is None
