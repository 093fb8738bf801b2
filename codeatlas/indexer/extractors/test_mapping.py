"""Map RSpec and Minitest files to the class they exercise."""

import re
from fnmatch import fnmatch

from ..config import MINITEST_GLOB, RSPEC_GLOB
from ..unit import Dependency, ExtractedUnit, count_loc
from . import FileExtractor

RSPEC_CONST_SUBJECT_RE = re.compile(r"^\s*(?:RSpec\.)?describe\s+([A-Z][\w:]*)[\s,]", re.MULTILINE)
RSPEC_STRING_SUBJECT_RE = re.compile(r"^\s*(?:RSpec\.)?describe\s+['\"]([^'\"]+)['\"]\s", re.MULTILINE)
MINITEST_SUBJECT_RE = re.compile(r"class\s+([\w:]+)Test\s*<")
RSPEC_EXAMPLE_RE = re.compile(r"^\s*(?:it|specify|example)\s+['\"]", re.MULTILINE)
MINITEST_EXAMPLE_RE = re.compile(r"^\s*test\s+['\"]|^\s*def\s+test_\w", re.MULTILINE)
SHARED_DEFINED_RE = re.compile(r"^\s*shared_examples(?:_for)?\s+['\"]([^'\"]+)['\"]", re.MULTILINE)
SHARED_USED_RE = re.compile(r"^\s*(?:include_examples|it_behaves_like)\s+['\"]([^'\"]+)['\"]", re.MULTILINE)

TEST_TYPE_DIRECTORIES = [
    (("spec/models/", "test/models/"), "model"),
    (("spec/controllers/", "test/controllers/"), "controller"),
    (("spec/requests/", "test/integration/"), "request"),
    (("spec/system/", "test/system/"), "system"),
]
SUFFIX_TYPES = [
    ("Controller", "controller"),
    ("Job", "job"),
    ("Mailer", "mailer"),
    ("Service", "service"),
    ("Interactor", "service"),
]


def detect_framework(file_path: str) -> str:
    return "rspec" if file_path.endswith("_spec.rb") else "minitest"


def extract_subject(source: str, framework: str) -> str | None:
    if framework == "rspec":
        match = RSPEC_CONST_SUBJECT_RE.search(source) or RSPEC_STRING_SUBJECT_RE.search(source)
        return match.group(1) if match else None
    match = MINITEST_SUBJECT_RE.search(source)
    return match.group(1) if match else None


def infer_test_type(file_path: str) -> str:
    for prefixes, test_type in TEST_TYPE_DIRECTORIES:
        if file_path.startswith(prefixes) or any(f"/{p}" in file_path for p in prefixes):
            return test_type
    return "unit"


def subject_dependency_type(subject: str, test_type: str) -> str:
    for suffix, dep_type in SUFFIX_TYPES:
        if subject.endswith(suffix):
            return dep_type
    return "controller" if test_type == "controller" else "model"


class TestMappingExtractor(FileExtractor):
    """One unit per test file, keyed by its root-relative path."""

    family = "test_mapping"
    globs = (RSPEC_GLOB, MINITEST_GLOB)

    # Not a test class, despite the name
    __test__ = False

    def candidates(self) -> list[str]:
        found: list[str] = []
        for pattern in self.globs:
            found.extend(self.reader.glob(pattern))
        return list(dict.fromkeys(found))

    def handles(self, path: str) -> bool:
        # fnmatch's "*" already crosses directories
        return any(fnmatch(path, pattern.replace("**/", "*")) for pattern in self.globs)

    def build_unit(self, file_path: str, source: str) -> ExtractedUnit | None:
        framework = detect_framework(file_path)
        subject = extract_subject(source, framework)
        test_type = infer_test_type(file_path)
        if framework == "rspec":
            test_count = len(RSPEC_EXAMPLE_RE.findall(source))
        else:
            test_count = len(MINITEST_EXAMPLE_RE.findall(source))

        deps = []
        # String subjects ("user signup flow") name behaviour, not a class
        if subject and re.fullmatch(r"[A-Z][\w:]*", subject):
            deps.append(Dependency(subject_dependency_type(subject, test_type), subject, "test_coverage"))

        return ExtractedUnit(
            type="test_mapping",
            identifier=file_path,
            namespace=None,
            file_path=file_path,
            source_code=source,
            metadata={
                "subject_class": subject,
                "test_count": test_count,
                "test_type": test_type,
                "test_framework": framework,
                "shared_examples": SHARED_DEFINED_RE.findall(source),
                "shared_examples_used": SHARED_USED_RE.findall(source),
                "loc": count_loc(source),
            },
            dependencies=deps,
        )
