"""Tests for the in-memory file set helpers"""
import pytest

from app.agents.schemas import FileEntry
from app.agents.tools.file_scanner import (
    find_file_content,
    find_similar_files,
    generate_project_tree,
    load_project_files,
    normalize_path,
)


def _files(*paths):
    return [FileEntry(path=p, content=f"// {p}") for p in paths]


def test_normalize_path():
    assert normalize_path("./src/app.ts") == "src/app.ts"
    assert normalize_path("/src/app.ts") == "src/app.ts"
    assert normalize_path("src/app.ts") == "src/app.ts"


def test_project_tree_rendering():
    tree = generate_project_tree(_files("src/routes/auth.ts", "src/app.ts", "package.json"))
    assert tree.splitlines() == [
        "├── src",
        "│   ├── routes",
        "│   │   └── auth.ts",
        "│   └── app.ts",
        "└── package.json",
    ]


def test_project_tree_truncates_deep_paths():
    tree = generate_project_tree(_files("a/b/c/d/e.ts", "top.ts"), max_depth=2)
    assert tree.splitlines() == [
        "├── a",
        "│   └── b/...",
        "└── top.ts",
    ]


def test_project_tree_empty():
    assert generate_project_tree([]) == ""


def test_find_file_content_normalizes_paths():
    files = [FileEntry(path="src/app.ts", content="const app = express()")]
    assert find_file_content(files, "./src/app.ts") == "const app = express()"
    assert find_file_content(files, "/src/app.ts") == "const app = express()"
    assert find_file_content(files, "src/missing.ts") is None


def test_find_file_content_empty_file_counts_as_found():
    files = [FileEntry(path="src/empty.ts", content="")]
    assert find_file_content(files, "src/empty.ts") == ""


def test_similar_files_match_name_or_segments():
    files = _files("src/routes/users.ts", "src/routes/auth.ts", "src/models/user.ts", "README.md")
    similar = find_similar_files(files, "app/routes/users.ts")
    assert similar == ["src/routes/users.ts", "src/routes/auth.ts"]


def test_similar_files_respects_limit():
    files = _files(*[f"src/routes/r{i}.ts" for i in range(10)])
    assert len(find_similar_files(files, "src/routes/missing.ts", limit=5)) == 5


def test_load_project_files(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.ts").write_text("express()", encoding="utf-8")
    (tmp_path / "node_modules" / "lib").mkdir(parents=True)
    (tmp_path / "node_modules" / "lib" / "index.js").write_text("ignored", encoding="utf-8")
    (tmp_path / "logo.png").write_bytes(b"\x89PNG\x00\x00")
    (tmp_path / "big.txt").write_text("x" * 100, encoding="utf-8")

    files = load_project_files(str(tmp_path), max_file_bytes=50)

    assert [f.path for f in files] == ["src/app.ts"]
    assert files[0].content == "express()"
    assert files[0].size == len("express()")


def test_load_project_files_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_project_files(str(tmp_path / "nope"))
