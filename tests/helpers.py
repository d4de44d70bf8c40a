from cia.signatures import (
    ASTConstructBodySignature,
    ASTNode,
    ASTSignatureChange,
    SourceCodeChange,
    SourceCodeEntity,
    SourceRange,
)


def sample_body_signature() -> ASTConstructBodySignature:
    """A method body with one statement nested under the method declaration."""
    statement = ASTNode(
        value="return a + b;",
        entity_type="RETURN_STATEMENT",
        source_range=SourceRange(40, 52),
    )
    method = ASTNode(
        value="com.acme.Calc.add(int,int)",
        entity_type="METHOD",
        modifiers=1,
        source_range=SourceRange(10, 60),
        children=[statement],
    )
    return ASTConstructBodySignature(construct_type="METH", root=method)


def sample_signature_change() -> ASTSignatureChange:
    method = SourceCodeEntity(
        unique_name="com.acme.Calc.add(int,int)",
        entity_type="METHOD",
        modifiers=1,
        source_range=SourceRange(10, 60),
    )
    return ASTSignatureChange(
        construct_type="METH",
        changes=[
            SourceCodeChange(
                operation_type="Insert",
                change_type="STATEMENT_INSERT",
                entity=SourceCodeEntity("checkOverflow(a, b);", "METHOD_INVOCATION", 0, SourceRange(30, 49)),
                parent_entity=method,
            ),
            SourceCodeChange(
                operation_type="Delete",
                change_type="STATEMENT_DELETE",
                entity=SourceCodeEntity("log(a);", "METHOD_INVOCATION", 0, SourceRange(20, 27)),
            ),
        ],
    )
