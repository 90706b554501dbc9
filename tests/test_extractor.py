from depdoc.extract.symbols import SymbolExtractor, clean_comment, dedupe_documents
from depdoc.models import ExportKind, PackageRef, SymbolKind

from conftest import LEFT_PAD_DTS

REF = PackageRef("left-pad", "1.3.0")


def _extract(source, path="index.d.ts", ref=REF):
    return SymbolExtractor().extract(path, source, ref)


def test_function_declaration_parameters_and_kind():
    docs = _extract(LEFT_PAD_DTS)

    assert len(docs) == 1
    doc = docs[0]
    assert doc.id.startswith("left-pad@1.3.0/index.d.ts#function_leftPad_")
    assert doc.metadata.kind == SymbolKind.FUNCTION
    assert doc.metadata.parameters == ["str", "len", "ch"]
    assert doc.metadata.return_type == "string"
    assert doc.metadata.description == "Pad a string on the left."
    assert doc.metadata.export_kind == ExportKind.DEFAULT
    assert doc.metadata.filepath == "index.d.ts"
    assert doc.content.startswith("function leftPad(")


def test_class_and_its_methods():
    source = """\
/** A bounded queue. */
export declare class Queue<T> {
    /** Add an item. */
    push(item: T): void;
    pop(): T | undefined;
}
"""
    docs = _extract(source, ref=PackageRef("queue", "1.0.0"))
    by_kind = {}
    for d in docs:
        by_kind.setdefault(d.metadata.kind, []).append(d)

    classes = by_kind[SymbolKind.CLASS]
    assert len(classes) == 1
    assert "#class_Queue_" in classes[0].id
    assert classes[0].metadata.description == "A bounded queue."

    methods = {d.id.split("#")[1].rsplit("_", 1)[0]: d for d in by_kind[SymbolKind.FUNCTION]}
    assert "function_Queue.push" in methods
    assert "function_Queue.pop" in methods
    assert methods["function_Queue.push"].metadata.parameters == ["item"]
    assert methods["function_Queue.push"].metadata.description == "Add an item."


def test_object_variable_and_ambient_constant():
    source = """\
export const defaults = { width: 10, height: 20 };
export declare const VERSION: string;
let counter = 0;
"""
    docs = _extract(source)
    kinds = {d.id.split("#")[1].rsplit("_", 1)[0]: d.metadata.kind for d in docs}

    assert kinds == {"object_defaults": SymbolKind.OBJECT, "constant_VERSION": SymbolKind.CONSTANT}


def test_default_and_named_exports():
    source = """\
export default function createClient(url: string): Client {
    return null as any;
}
export function helper(): void {}
"""
    docs = {d.id.split("_")[1]: d for d in _extract(source)}

    assert docs["createClient"].metadata.export_kind == ExportKind.DEFAULT
    assert docs["helper"].metadata.export_kind == ExportKind.NAMED
    assert docs["createClient"].metadata.parameters == ["url"]


def test_interface_is_extracted():
    docs = _extract("export interface Options {\n    verbose?: boolean;\n}\n")

    assert len(docs) == 1
    assert docs[0].metadata.kind == SymbolKind.INTERFACE
    assert "#interface_Options_" in docs[0].id


def test_declarations_inside_ambient_module():
    source = """\
declare module "fancy-lib" {
    export function fancy(x: number): string;
}
"""
    docs = _extract(source)

    assert [d.metadata.kind for d in docs] == [SymbolKind.FUNCTION]
    assert "#function_fancy_" in docs[0].id


def test_export_assignment_inside_ambient_module_marks_default():
    source = """\
declare function helper(): void;

declare module "fancy-lib" {
    function fancy(x: number): string;
    function helper(): void;
    export = fancy;
}
"""
    docs = _extract(source)
    kinds = {(d.id.split("#")[1].split("_")[1], d.metadata.export_kind) for d in docs}

    assert ("fancy", ExportKind.DEFAULT) in kinds
    assert ("helper", ExportKind.NAMED) in kinds
    assert ("helper", ExportKind.DEFAULT) not in kinds


def test_syntax_errors_keep_well_formed_declarations():
    source = "export declare function good(a: string): void;\n\n)))) }}} @@@ function\n"
    docs = _extract(source)

    assert any("#function_good_" in d.id for d in docs)


def test_empty_file_yields_nothing():
    assert _extract("   \n") == []


def test_duplicate_declarations_are_stored_once():
    docs = _extract(LEFT_PAD_DTS) + _extract(LEFT_PAD_DTS)

    unique = dedupe_documents(docs)

    assert len(docs) == 2
    assert len(unique) == 1
    assert unique[0] is docs[0]


def test_clean_comment_strips_jsdoc_markers():
    assert clean_comment("/**\n * First line.\n * Second line.\n */") == "First line.\nSecond line."
    assert clean_comment("// note") == "note"
