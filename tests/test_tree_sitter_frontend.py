from __future__ import annotations

from pathlib import Path

import pytest

from llrtrace.analysis.extractor import extract_unit
from llrtrace.analysis.model import FindingKind, OccurrenceKind, ScopeKind, SymbolKind
from llrtrace.analysis.scan import scan_paths
from llrtrace.exceptions import FrontendError
from llrtrace.frontend import DeclKind
from llrtrace.frontend.tree_sitter_cpp import TreeSitterFrontend

HEADER = r"""
#pragma once

#include <utility>

namespace na::nb::nc {

template <typename A, typename B>
struct SomeType {
    A instanceA;
    B instanceB;
};

/**
 * \brief some stuff to do
 * \llr REQ-TEST-SWL-1
 */
void doThings(const SomeType<int, float> &);

template <typename T, std::size_t N>
class Array {
    /*
     * Private by default.
     */
    void HiddenMethod();

   public:
    /**
     * \brief Construct array
     * \llr REQ-TEST-SWL-2
     */
    template <typename... Args>
    Array(Args &&...args) : mData{std::forward<Args>(args)...} {}

    /**
     * \llr REQ-TEST-SWL-2
     * \llr REQ-TEST-SWL-12
     */
    T &operator[](std::size_t index) { return mData[index]; }

   private:
    T mData[N];

   public:
    /*
     * \llr REQ-TEST-SWL-2
     */
    void ButThisIsPublic();
};

struct A {
    /**
     * \llr REQ-TEST-SWL-2
     */
    void StructMethodsArePublicByDefault();

   private:
    void ButCanHavePrivateFunctions();
};

namespace {
// @llr REQ-TEST-SWL-5
void functionInAnAnonymousNamespace();
}

namespace detail {
// @llr REQ-TEST-SWL-6
void functionInADetailNamespace();
}

/**
 * \llr REQ-TEST-SWL-2
 */
template <typename Iterator>
void sort(Iterator begin, Iterator end) {
    struct Local {
        void notEmitted();
    };
}

template <typename T>
class B final {
    class ShouldNotBeFound final {
       public:
        void AlsoNotFound();
    };

   public:
    // @llr REQ-TEST-SWL-2
    void cool();

    // Deleted member
    B() = delete;
};

extern "C" {

/**
 * \llr REQ-TEST-SWL-2
 */
void ExternCFunc();
}

/**
 * \llr REQ-TEST-SWL-2
 */
void doThings();

class Abstract {
   public:
    virtual void noImpl() = 0;
    ~Abstract();
};
}  // namespace na::nb::nc
"""

SOURCE = r"""
#include "a.hh"

namespace na::nb::nc {

/**
 * \brief some stuff to do
 * \llr REQ-TEST-SWL-1
 */
void doThings() {}

// @llr REQ-TEST-SWL-3
using MyType = int;

// @llr REQ-TEST-SWL-3
extern "C" void externFunc();

extern "C" {

/**
 * \llr REQ-TEST-SWL-2
 */
int ExternCVar;
}

}  // namespace na::nb::nc
"""


def _by_display(occurrences):
    return {item.identity.display(): item for item in occurrences}


@pytest.fixture
def library(write_sources) -> Path:
    return write_sources({"include/a.hh": HEADER, "src/a.cc": SOURCE})


def test_header_visibility(library: Path) -> None:
    frontend = TreeSitterFrontend()
    unit = frontend.parse(library / "include" / "a.hh")
    occurrences = _by_display(extract_unit(unit, root=library).occurrences)

    assert occurrences["na::nb::nc::doThings(const SomeType<int,float>&)"].tags.implements == {
        "REQ-TEST-SWL-1"
    }
    assert not occurrences["na::nb::nc::Array::HiddenMethod()"].eligible
    public = occurrences["na::nb::nc::Array::ButThisIsPublic()"]
    assert public.eligible
    assert public.tags.implements == {"REQ-TEST-SWL-2"}
    assert public.identity.kind is SymbolKind.METHOD
    subscript = occurrences["na::nb::nc::Array::operator[](std::size_t)"]
    assert subscript.eligible
    assert subscript.kind is OccurrenceKind.DEFINITION
    assert subscript.tags.sorted_implements() == ("REQ-TEST-SWL-12", "REQ-TEST-SWL-2")
    constructor = occurrences["na::nb::nc::Array::Array(Args&&...)"]
    assert constructor.identity.kind is SymbolKind.TEMPLATE
    assert constructor.eligible
    assert not occurrences["na::nb::nc::Array::mData"].eligible

    assert occurrences["na::nb::nc::A::StructMethodsArePublicByDefault()"].eligible
    assert not occurrences["na::nb::nc::A::ButCanHavePrivateFunctions()"].eligible
    assert not occurrences["na::nb::nc::functionInAnAnonymousNamespace()"].eligible
    assert occurrences["na::nb::nc::detail::functionInADetailNamespace()"].eligible

    sort = occurrences["na::nb::nc::sort(Iterator, Iterator)"]
    assert sort.identity.kind is SymbolKind.TEMPLATE
    assert sort.tags.implements == {"REQ-TEST-SWL-2"}
    assert not any("notEmitted" in name for name in occurrences)

    assert not occurrences["na::nb::nc::B::ShouldNotBeFound::AlsoNotFound()"].eligible
    assert occurrences["na::nb::nc::B::cool()"].eligible
    deleted = occurrences["na::nb::nc::B::B()"]
    assert deleted.eligible and not deleted.mandatory
    assert deleted.kind is OccurrenceKind.DECLARATION

    extern_c = occurrences["na::nb::nc::ExternCFunc()"]
    assert extern_c.eligible
    assert any(scope.kind is ScopeKind.LINKAGE for scope in extern_c.context.scopes)

    assert not occurrences["na::nb::nc::Abstract::noImpl()"].mandatory
    destructor = occurrences["na::nb::nc::Abstract::~Abstract()"]
    assert destructor.eligible and not destructor.mandatory


def test_source_declarations(library: Path) -> None:
    unit = TreeSitterFrontend().parse(library / "src" / "a.cc")
    kinds = {decl.name: decl for decl in unit.declarations}
    assert kinds["doThings"].is_definition
    assert kinds["MyType"].kind is DeclKind.TYPE_ALIAS
    assert kinds["externFunc"].kind is DeclKind.FUNCTION
    assert not kinds["externFunc"].is_definition
    assert kinds["ExternCVar"].kind is DeclKind.VARIABLE
    assert kinds["ExternCVar"].is_definition
    assert "\\llr REQ-TEST-SWL-2" in (kinds["ExternCVar"].comment or "")


def test_scan_flags_declaration_definition_mismatch(library: Path) -> None:
    result = scan_paths([library], root=library)
    (mismatch,) = result.match.mismatches()
    assert mismatch.identity is not None
    assert mismatch.identity.display() == "na::nb::nc::doThings()"
    assert [variant.implements for variant in mismatch.variants] == [
        ("REQ-TEST-SWL-2",),
        ("REQ-TEST-SWL-1",),
    ]
    assert [str(location) for location in mismatch.locations] == [
        "include/a.hh:106",
        "src/a.cc:9",
    ]
    ignored = [f for f in result.findings if f.kind is FindingKind.IGNORED_TAG]
    assert {f.identity.display() for f in ignored if f.identity} == {
        "na::nb::nc::functionInAnAnonymousNamespace()"
    }
    missing = {
        f.identity.display()
        for f in result.findings
        if f.kind is FindingKind.MISSING_TAG and f.identity
    }
    assert "na::nb::nc::Abstract::~Abstract()" not in missing


def test_out_of_line_definitions_use_the_class_scope(write_sources) -> None:
    root = write_sources(
        {
            "widget.hh": """
                namespace app {
                class Widget {
                  public:
                    // @llr REQ-10
                    void draw(int width, int height = 3) const;

                  private:
                    void hidden();
                };
                }
                """,
            "widget.cc": """
                #include "widget.hh"

                namespace app {
                // @llr REQ-10
                void Widget::draw(int w, int h) const {}

                // @llr REQ-11
                void Widget::hidden() {}
                }

                // @llr REQ-12
                void Missing::f() {}
                """,
        }
    )
    result = scan_paths([root], root=root)
    symbols = {symbol.identity.display(): symbol for symbol in result.match.symbols}
    draw = symbols["app::Widget::draw(int, int) const"]
    assert draw.eligible
    assert [item.kind for item in draw.occurrences] == [
        OccurrenceKind.DEFINITION,
        OccurrenceKind.DECLARATION,
    ]
    assert not symbols["app::Widget::hidden()"].eligible
    missing = symbols["Missing::f()"]
    assert not missing.eligible
    assert missing.occurrences[0].ineligible_reason == "unresolved scope 'Missing'"
    assert result.match.mismatches() == []


def test_destructors_of_abstract_records_are_optional(write_sources) -> None:
    root = write_sources(
        {
            "shape.hh": """
                class Shape {
                  public:
                    virtual double area() const = 0;
                    virtual ~Shape();
                };

                class Square {
                  public:
                    ~Square();
                };
                """,
            "shape.cc": """
                #include "shape.hh"

                Shape::~Shape() {}

                Square::~Square() {}
                """,
        }
    )
    result = scan_paths([root], root=root)
    symbols = {symbol.identity.display(): symbol for symbol in result.match.symbols}
    shape = symbols["Shape::~Shape()"]
    assert shape.eligible
    assert [item.mandatory for item in shape.occurrences] == [False, False]
    assert all(item.mandatory for item in symbols["Square::~Square()"].occurrences)
    missing = [f.identity.display() for f in result.findings if f.kind is FindingKind.MISSING_TAG]
    assert missing == ["Square::~Square()"]


def test_parse_without_prepare_resolves_within_the_unit(write_sources) -> None:
    root = write_sources(
        {
            "one.cc": """
                struct Point {
                    int norm() const;
                };

                // @llr REQ-1
                int Point::norm() const { return 0; }
                """,
        }
    )
    unit = TreeSitterFrontend().parse(root / "one.cc")
    (record, declared, defined) = unit.declarations
    assert record.kind is DeclKind.RECORD and record.is_definition
    assert defined.scopes == declared.scopes
    assert defined.scopes[-1].kind is ScopeKind.STRUCT
    assert defined.comment == "// @llr REQ-1"


def test_comment_attachment_rules(write_sources) -> None:
    root = write_sources(
        {
            "c.cc": """
                // @llr REQ-1

                void separatedByBlankLine();
                int counter; // @llr REQ-2
                void afterTrailingComment();
                // first
                // @llr REQ-3
                void twoLineRun();
                """,
        }
    )
    unit = TreeSitterFrontend().parse(root / "c.cc")
    comments = {decl.name: decl.comment for decl in unit.declarations}
    assert comments["separatedByBlankLine"] is None
    assert comments["counter"] is None
    assert comments["afterTrailingComment"] is None
    assert comments["twoLineRun"] == "// first\n// @llr REQ-3"


def test_unreadable_sources_raise(tmp_path: Path) -> None:
    frontend = TreeSitterFrontend()
    with pytest.raises(FrontendError):
        frontend.parse(tmp_path / "missing.cc")
    binary = tmp_path / "latin1.cc"
    binary.write_bytes(b"// caf\xe9\nvoid f();\n")
    with pytest.raises(FrontendError) as excinfo:
        frontend.parse(binary)
    assert "UTF-8" in excinfo.value.reason
