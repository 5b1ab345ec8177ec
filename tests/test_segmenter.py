"""
Tests for splitting unified diffs into function changes.
"""

from specsync.core.models import ChangedFile, ChangeType, CommentKind
from specsync.segmenter import DiffSegmenter, language_for_path


NEW_FILE_DIFF = """diff --git a/src/math.js b/src/math.js
new file mode 100644
index 0000000..e69de29
--- /dev/null
+++ b/src/math.js
@@ -0,0 +1 @@
+function add(a,b){return a+b;}
"""

MODIFIED_DIFF = """diff --git a/src/account.js b/src/account.js
index 1111111..2222222 100644
--- a/src/account.js
+++ b/src/account.js
@@ -10,5 +10,8 @@ class Account {
 function withdraw(account, amount) {
+  if (amount <= 0) {
+    throw new Error("invalid amount");
+  }
   account.balance -= amount;
   return account;
 }
"""

PYTHON_DIFF = """diff --git a/app/service.py b/app/service.py
index 3333333..4444444 100644
--- a/app/service.py
+++ b/app/service.py
@@ -1,2 +1,8 @@
 def outer(x):
+    def inner(y):
+        return y * 2
+
     return inner(x)
+
+def helper():
+    return 1
"""


def test_single_added_function():
    """A one-line added function is one 'added' change."""
    segmenter = DiffSegmenter()
    changes = segmenter.parse_diff(NEW_FILE_DIFF, ["src/math.js"])

    assert len(changes) == 1
    change = changes[0]
    assert change.function_name == "add"
    assert change.change_type == ChangeType.ADDED
    assert change.function_key == "src/math.js:add"
    assert change.language == "javascript"
    assert change.start_line == 1


def test_modified_function_uses_hunk_line_numbers():
    segmenter = DiffSegmenter()
    changes = segmenter.parse_diff(MODIFIED_DIFF, [ChangedFile(path="src/account.js")])

    assert [c.function_name for c in changes] == ["withdraw"]
    change = changes[0]
    assert change.change_type == ChangeType.MODIFIED
    assert change.start_line == 10
    assert "throw new Error" in change.raw_body
    assert change.raw_body.rstrip().endswith("}")


def test_changed_file_dicts_are_accepted():
    segmenter = DiffSegmenter()
    changes = segmenter.parse_diff(NEW_FILE_DIFF, [{"filename": "src/math.js", "status": "added"}])
    assert len(changes) == 1


def test_edited_signature_is_one_change():
    """Old and new versions of a signature belong to the same region."""
    diff = """diff --git a/greet.js b/greet.js
--- a/greet.js
+++ b/greet.js
@@ -1,3 +1,3 @@
-function greet(name) {
+function greet(name, greeting) {
   return "hi " + name;
 }
"""
    changes = DiffSegmenter().parse_diff(diff, ["greet.js"])

    assert len(changes) == 1
    assert changes[0].function_name == "greet"
    assert changes[0].change_type == ChangeType.MODIFIED


def test_unclosed_function_is_still_emitted():
    diff = """diff --git a/open.js b/open.js
--- a/open.js
+++ b/open.js
@@ -1,0 +1,2 @@
+function open(a) {
+  return a;
"""
    changes = DiffSegmenter().parse_diff(diff, ["open.js"])

    assert [c.function_name for c in changes] == ["open"]
    assert changes[0].change_type == ChangeType.ADDED


def test_python_regions_close_on_dedent_and_nest():
    """Nested definitions get their own region; the outer region keeps its lines."""
    changes = DiffSegmenter().parse_diff(PYTHON_DIFF, ["app/service.py"])
    by_name = {c.function_name: c for c in changes}

    assert [c.function_name for c in changes] == ["outer", "inner", "helper"]
    assert by_name["outer"].change_type == ChangeType.MODIFIED
    assert by_name["inner"].change_type == ChangeType.ADDED
    assert by_name["helper"].change_type == ChangeType.ADDED
    assert "return y * 2" in by_name["outer"].raw_body
    assert "return inner(x)" not in by_name["inner"].raw_body
    assert "def helper" not in by_name["outer"].raw_body


def test_non_code_and_test_files_are_skipped():
    segmenter = DiffSegmenter()

    assert segmenter.is_code_file("src/app.js")
    assert segmenter.is_code_file("src/main.rs")
    assert segmenter.is_code_file("pkg/service.py")
    assert not segmenter.is_code_file("README.md")
    assert not segmenter.is_code_file("src/app.test.js")
    assert not segmenter.is_code_file("src/AccountSpec.java")

    diff = NEW_FILE_DIFF.replace("src/math.js", "src/math.test.js")
    assert segmenter.parse_diff(diff, ["src/math.test.js"]) == []


def test_extract_file_diff_matches_either_side():
    diff = """diff --git a/old/name.js b/new/name.js
similarity index 90%
rename from old/name.js
rename to new/name.js
--- a/old/name.js
+++ b/new/name.js
@@ -1,1 +1,1 @@
-function f() { return 1; }
+function f() { return 2; }
"""
    segmenter = DiffSegmenter()

    assert "return 2" in segmenter.extract_file_diff(diff, "new/name.js")
    assert "return 2" in segmenter.extract_file_diff(diff, "old/name.js")
    assert segmenter.extract_file_diff(diff, "other.js") == ""


def test_changed_files_from_diff_headers():
    diff = NEW_FILE_DIFF + MODIFIED_DIFF
    files = DiffSegmenter().changed_files_from_diff(diff)

    assert [f.path for f in files] == ["src/math.js", "src/account.js"]
    assert files[0].status == "added"
    assert files[1].status == "modified"


def test_determine_change_type():
    segmenter = DiffSegmenter()

    assert segmenter.determine_change_type("+a\n+b") == ChangeType.ADDED
    assert segmenter.determine_change_type("-a\n-b") == ChangeType.REMOVED
    assert segmenter.determine_change_type("-a\n+b") == ChangeType.MODIFIED
    assert segmenter.determine_change_type(" a\n b") == ChangeType.MODIFIED
    assert segmenter.determine_change_type(" function f() {\n+  check();\n }") == ChangeType.MODIFIED
    assert segmenter.determine_change_type("+a\n \n\n+b") == ChangeType.ADDED


def test_comments_near_function_are_classified():
    diff = """diff --git a/bank.js b/bank.js
--- a/bank.js
+++ b/bank.js
@@ -1,0 +1,7 @@
+// TODO: handle overdraft
+/**
+ * @param amount positive amount
+ */
+function deposit(account, amount) {
+  return account.balance + amount;
+}
"""
    changes = DiffSegmenter().parse_diff(diff, ["bank.js"])

    assert len(changes) == 1
    kinds = [c.kind for c in changes[0].comments]
    assert CommentKind.TODO in kinds
    assert CommentKind.DOCUMENTATION in kinds


def test_get_comment_type():
    assert DiffSegmenter.get_comment_type("// FIXME later") == CommentKind.TODO
    assert DiffSegmenter.get_comment_type("* @returns the sum") == CommentKind.DOCUMENTATION
    assert DiffSegmenter.get_comment_type("// @pre amount > 0") == CommentKind.SPECIFICATION
    assert DiffSegmenter.get_comment_type("// plain note") == CommentKind.GENERAL


def test_find_test_files(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "math.test.js").write_text("test('x', () => {});")

    found = DiffSegmenter.find_test_files("src/math.js", tmp_path)

    assert found == ["src/math.test.js"]
    assert DiffSegmenter.find_test_files("src/other.js", tmp_path) == []


def test_language_for_path():
    assert language_for_path("a/b.ts") == "typescript"
    assert language_for_path("a/b.tsx") == "tsx"
    assert language_for_path("a/b.py") == "python"
    assert language_for_path("a/b.txt") is None


def test_extract_comments_from_python_source():
    source = "# @pre amount > 0\ndef withdraw(account, amount):\n    return account  # unchanged\n\n\n\n\n\n\n# far away\n"
    comments = DiffSegmenter().extract_comments(source, 2, "python")

    assert [c.text for c in comments] == ["# @pre amount > 0", "return account  # unchanged"]
    assert [c.line_number for c in comments] == [1, 3]
    assert comments[0].kind == CommentKind.SPECIFICATION


def test_c_and_cpp_multi_word_return_types():
    diff = """diff --git a/src/count.c b/src/count.c
new file mode 100644
--- /dev/null
+++ b/src/count.c
@@ -0,0 +1,7 @@
+unsigned int count(const char *s) {
+  unsigned int n = 0;
+  while (*s++) {
+    n++;
+  }
+  return n;
+}
diff --git a/src/counter.cpp b/src/counter.cpp
new file mode 100644
--- /dev/null
+++ b/src/counter.cpp
@@ -0,0 +1,3 @@
+static unsigned long long Counter::total(int x) {
+  return x;
+}
"""
    changes = DiffSegmenter().parse_diff(diff, ["src/count.c", "src/counter.cpp"])

    assert [(c.function_name, c.language) for c in changes] == [("count", "c"), ("total", "cpp")]
    assert changes[0].raw_body.rstrip().endswith("+}")
