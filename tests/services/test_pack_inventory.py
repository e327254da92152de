import os

from twmt_sync.services.pack_inventory import (
    collect_pack_files,
    find_mod_image,
    inspect_mod_directory,
)


class TestFindModImage:
    def test_prefers_pack_named_image(self):
        names = ["preview.png", "my_mod.png", "other.jpg"]
        assert find_mod_image("/mods/1", "my_mod", names) == os.path.join("/mods/1", "my_mod.png")

    def test_pack_named_image_case_insensitive(self):
        found = find_mod_image("/mods/1", "My_Mod", ["my_mod.JPG"])
        assert found == os.path.join("/mods/1", "my_mod.JPG")

    def test_falls_back_to_preview(self):
        names = ["zzz.png", "preview.jpeg"]
        assert find_mod_image("/mods/1", "my_mod", names) == os.path.join("/mods/1", "preview.jpeg")

    def test_falls_back_to_any_image(self):
        names = ["readme.txt", "b.png", "a.jpg"]
        assert find_mod_image("/mods/1", "my_mod", names) == os.path.join("/mods/1", "a.jpg")

    def test_no_image(self):
        assert find_mod_image("/mods/1", "my_mod", ["my_mod.pack"]) is None

    def test_reads_directory(self, tmp_path):
        (tmp_path / "preview.png").write_bytes(b"")
        assert find_mod_image(str(tmp_path), "x") == str(tmp_path / "preview.png")


class TestInspectModDirectory:
    def test_record_fields(self, make_pack):
        pack = make_pack("100", "my_mod.pack", mtime=1_700_000_123)
        mod_dir = os.path.dirname(pack)
        open(os.path.join(mod_dir, "my_mod.png"), "wb").close()

        record = inspect_mod_directory(mod_dir, "100")
        assert record is not None
        assert record.workshop_id == "100"
        assert record.pack_file_path == pack
        assert record.pack_file_name == "my_mod.pack"
        assert record.base_name == "my_mod"
        assert record.last_modified == 1_700_000_123
        assert record.image_path == os.path.join(mod_dir, "my_mod.png")

    def test_first_pack_in_sorted_order(self, make_pack):
        make_pack("100", "zeta.pack")
        pack = make_pack("100", "alpha.pack")
        record = inspect_mod_directory(os.path.dirname(pack), "100")
        assert record.pack_file_name == "alpha.pack"

    def test_no_pack(self, tmp_path):
        (tmp_path / "readme.txt").write_text("hi")
        assert inspect_mod_directory(str(tmp_path), "100") is None


class TestCollectPackFiles:
    def test_numeric_folders_only(self, workshop_root, make_pack):
        make_pack("200")
        make_pack("100")
        (workshop_root / "not_a_mod").mkdir()
        (workshop_root / "not_a_mod" / "x.pack").write_bytes(b"")
        (workshop_root / "300").mkdir()

        records = collect_pack_files(str(workshop_root))
        assert [r.workshop_id for r in records] == ["100", "200"]

    def test_ignores_stray_files(self, workshop_root, make_pack):
        make_pack("100")
        (workshop_root / "12345").write_text("not a directory")
        assert [r.workshop_id for r in collect_pack_files(str(workshop_root))] == ["100"]

    def test_missing_root(self, tmp_path):
        assert collect_pack_files(str(tmp_path / "missing")) == []
