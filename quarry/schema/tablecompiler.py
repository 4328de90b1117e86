"""Table compiler: create/alter table plus index and constraint statements.

The base class renders the Postgres family's DDL; dialect subclasses
override the statements their grammar spells differently.  Statement order
is fixed: the table (or its column changes) first, then follow-up column
statements such as comments, then the table comment, then every recorded
index/constraint statement in call order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from quarry.errors import CapabilityError, ValidationError
from quarry.query.model import Grouping
from quarry.schema.compiler import DDLCompiler

if TYPE_CHECKING:
    from quarry.client import Client
    from quarry.schema.columnbuilder import ColumnBuilder, ForeignKey
    from quarry.schema.columncompiler import ColumnCompiler
    from quarry.schema.tablebuilder import CheckConstraint, TableBuilder

logger = structlog.get_logger(__name__)


class TableCompiler(DDLCompiler):
    """Compiles one :class:`~quarry.schema.tablebuilder.TableBuilder`.

    Attributes:
        add_column_prefix: Text between ``alter table t`` and a new column.
        inline_statements: Statement kinds rendered inside ``create table``
            instead of as separate statements (SQLite keys).
        partial_indexes: ``create index ... where`` is available.
    """

    add_column_prefix = "add column "
    inline_statements: tuple[str, ...] = ()
    partial_indexes = True

    def __init__(self, client: Client, table_builder: TableBuilder) -> None:
        self.table_builder = table_builder
        super().__init__(client)
        self.method = "alter" if table_builder.method == "alter" else "create"
        self.single = table_builder.single
        self.table_name_raw = table_builder.table_name
        self.schema_name = table_builder.schema

    def new_formatter(self) -> Any:
        return self.client.formatter(query_context=self.table_builder.query_context())

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def to_sql(self) -> list[Any]:
        creating = self.method == "create"
        if creating:
            self.create_table()
        else:
            self.alter_table()
        for statement in self.table_builder.statements:
            if creating and statement.method in self.inline_statements:
                continue
            getattr(self, statement.method)(*statement.args, **statement.options)
        return self.sequence

    def table_name(self) -> str:
        return self.qualified(self.table_name_raw, self.schema_name)

    def column_compiler(self, column: ColumnBuilder) -> ColumnCompiler:
        return self.client.column_compiler(self, column)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_table(self) -> None:
        if self.table_builder.method == "create_like":
            self.create_table_like()
            for column in self.table_builder.columns:
                self.add_column(column)
            self.table_comment()
            return
        compilers = [self.column_compiler(column) for column in self.table_builder.columns]
        body = ", ".join(compiler.compile_column() for compiler in compilers)
        body += self.checks_sql()
        body += self.inline_constraints_sql()
        self.push_query(f"{self.create_prefix()} ({body}){self.table_options()}")
        for compiler in compilers:
            self.push_additional(compiler)
        self.table_comment()

    def create_prefix(self) -> str:
        exists = "if not exists " if self.table_builder.method == "create_if_not_exists" else ""
        return f"create table {exists}{self.table_name()}"

    def create_table_like(self) -> None:
        like = self.qualified(self.table_builder.table_name_like, self.schema_name)
        self.push_query(f"create table {self.table_name()} as select * from {like} where 0=1")

    def checks_sql(self) -> str:
        return "".join(f", {self.check_sql(check)}" for check in self.table_builder.checks)

    def check_sql(self, check: CheckConstraint) -> str:
        name = f"constraint {self.formatter.wrap(check.name)} " if check.name else ""
        return f"{name}check ({self.inline(check.predicate, check.bindings)})"

    def inline_constraints_sql(self) -> str:
        return ""

    def table_options(self) -> str:
        return ""

    def table_comment(self) -> None:
        if "comment" not in self.single:
            return
        comment = self.capabilities.escape(self.single["comment"], None)
        self.push_query(f"comment on table {self.table_name()} is {comment}")

    def push_additional(self, compiler: ColumnCompiler) -> None:
        for sql in compiler.additional:
            self.push_query(sql)

    # ------------------------------------------------------------------
    # Alter
    # ------------------------------------------------------------------

    def alter_table(self) -> None:
        for column in self.table_builder.columns:
            if column.dropped:
                self.drop_column(column.name)
            elif column.method == "alter":
                self.alter_column_with_prelude(column)
            else:
                self.add_column(column)
        self.table_comment()

    def add_column(self, column: ColumnBuilder) -> None:
        compiler = self.column_compiler(column)
        self.push_query(f"alter table {self.table_name()} {self.add_column_prefix}{compiler.compile_column()}")
        self.push_additional(compiler)

    def alter_column_with_prelude(self, column: ColumnBuilder) -> None:
        prelude = self.capabilities.alter_column_prelude
        if prelude:
            logger.warning(
                "schema.alter_column.experimental",
                dialect=self.client.dialect_name,
                table=self.table_name_raw,
                column=column.name,
            )
            self.push_query(prelude)
        self.alter_column(column)

    def alter_column(self, column: ColumnBuilder) -> None:
        compiler = self.column_compiler(column)
        name = compiler.wrapped_name
        column_type = compiler.column_type()
        actions: list[str] = []
        if column.alters_type:
            actions.append(f"alter column {name} drop default")
        if column.alters_nullable:
            actions.append(f"alter column {name} drop not null")
        if column.alters_type:
            actions.append(f"alter column {name} type {column_type} using ({name}::{column_type})")
        default = compiler.default_value()
        if default is not None:
            actions.append(f"alter column {name} set default {default}")
        if column.alters_nullable and column.modifiers.get("nullable") == (False,):
            actions.append(f"alter column {name} set not null")
        if actions:
            self.push_query(f"alter table {self.table_name()} {', '.join(actions)}")
        if "comment" in column.modifiers:
            compiler.modifier_comment(*column.modifiers["comment"])
            self.push_additional(compiler)

    def drop_column(self, *columns: str) -> None:
        for column in columns:
            self.push_query(f"alter table {self.table_name()} drop column {self.formatter.wrap(column)}")

    def rename_column(self, old: str, new: str) -> None:
        self.push_query(
            f"alter table {self.table_name()} rename column "
            f"{self.formatter.wrap(old)} to {self.formatter.wrap(new)}"
        )

    def set_nullable(self, column: str) -> None:
        self.push_query(f"alter table {self.table_name()} alter column {self.formatter.wrap(column)} drop not null")

    def drop_nullable(self, column: str) -> None:
        self.push_query(f"alter table {self.table_name()} alter column {self.formatter.wrap(column)} set not null")

    def check(self, check: CheckConstraint) -> None:
        self.push_query(f"alter table {self.table_name()} add {self.check_sql(check)}")

    def drop_checks(self, *names: str) -> None:
        for name in names:
            self.push_query(f"alter table {self.table_name()} drop constraint {self.formatter.wrap(name)}")

    # ------------------------------------------------------------------
    # Indexes and keys
    # ------------------------------------------------------------------

    def index_name(self, kind: str, columns: list[Any], name: str | None = None) -> str:
        """``{table}_{columns}_{kind}`` lowercased unless a name is given."""
        if name:
            return self.formatter.wrap(name)
        generated = f"{self.table_name_raw}_{'_'.join(str(c) for c in columns)}_{kind}".lower()
        return self.formatter.wrap(generated.replace("-", "_").replace(".", "_"))

    def predicate_sql(self, predicate: Any) -> str:
        """Inline the ``where`` of a builder used as a partial-index predicate."""
        if predicate is None:
            return ""
        if not self.partial_indexes:
            raise self.unsupported("partial indexes")
        compiler = self.client.query_compiler(predicate)
        sql = compiler.conditions(Grouping.WHERE)
        return f" where {self.client.format_query(sql, compiler.formatter.bindings)}"

    def index_using(self, index_type: str | None) -> str:
        return ""

    def index(
        self,
        columns: list[Any],
        index_name: str | None = None,
        index_type: str | None = None,
        predicate: Any = None,
        **options: Any,
    ) -> None:
        name = self.index_name("index", columns, index_name)
        self.push_query(
            f"create index {name} on {self.table_name()}{self.index_using(index_type)}"
            f" ({self.formatter.columnize(columns)}){self.predicate_sql(predicate)}"
        )

    def unique(
        self,
        columns: list[Any],
        index_name: str | None = None,
        deferrable: str | None = None,
        use_constraint: bool | None = None,
        predicate: Any = None,
        **options: Any,
    ) -> None:
        name = self.index_name("unique", columns, index_name)
        if use_constraint is None:
            use_constraint = predicate is None
        if use_constraint:
            if predicate is not None:
                raise ValidationError("A unique constraint cannot carry a predicate", code="INVALID_INDEX")
            self.push_query(
                f"alter table {self.table_name()} add constraint {name} unique "
                f"({self.formatter.columnize(columns)}){self.deferrable_sql(deferrable)}"
            )
            return
        if deferrable:
            raise ValidationError("A unique index cannot be deferrable", code="INVALID_INDEX")
        self.push_query(
            f"create unique index {name} on {self.table_name()} "
            f"({self.formatter.columnize(columns)}){self.predicate_sql(predicate)}"
        )

    def primary(self, columns: list[Any], constraint_name: str | None = None, deferrable: str | None = None) -> None:
        name = self.formatter.wrap(constraint_name or f"{self.table_name_raw}_pkey")
        self.push_query(
            f"alter table {self.table_name()} add constraint {name} primary key "
            f"({self.formatter.columnize(columns)}){self.deferrable_sql(deferrable)}"
        )

    def foreign(self, foreign: ForeignKey) -> None:
        self.push_query(f"alter table {self.table_name()} add {self.foreign_sql(foreign)}")

    def foreign_sql(self, foreign: ForeignKey) -> str:
        """``constraint <name> foreign key (...) references ...`` with actions."""
        if foreign.references is None or foreign.in_table is None:
            raise ValidationError(
                f"Foreign key on {foreign.column!r} needs references() and in_table()",
                code="INVALID_FOREIGN",
            )
        columns = foreign.column if isinstance(foreign.column, list) else [foreign.column]
        references = foreign.references if isinstance(foreign.references, list) else [foreign.references]
        name = self.index_name("foreign", columns, foreign.key_name)
        sql = (
            f"constraint {name} foreign key ({self.formatter.columnize(columns)}) "
            f"references {self.formatter.wrap(foreign.in_table)} ({self.formatter.columnize(references)})"
        )
        if foreign.on_delete:
            sql += f" on delete {foreign.on_delete}"
        if foreign.on_update:
            sql += f" on update {foreign.on_update}"
        return sql + self.deferrable_sql(foreign.deferrable)

    def deferrable_sql(self, deferrable: str | None) -> str:
        if not deferrable:
            return ""
        if not self.capabilities.deferrable:
            dialect = self.client.dialect_name
            raise CapabilityError(f"{dialect} does not support deferrable", feature="deferrable", dialect=dialect)
        return f" deferrable initially {deferrable}"

    def drop_index(self, columns: list[Any], index_name: str | None = None) -> None:
        name = self.index_name("index", columns, index_name)
        if self.schema_name:
            name = f"{self.formatter.wrap(self.schema_name)}.{name}"
        self.push_query(f"drop index {name}")

    def drop_unique(self, columns: list[Any], index_name: str | None = None) -> None:
        name = self.index_name("unique", columns, index_name)
        self.push_query(f"alter table {self.table_name()} drop constraint {name}")

    def drop_primary(self, constraint_name: str | None = None) -> None:
        name = self.formatter.wrap(constraint_name or f"{self.table_name_raw}_pkey")
        self.push_query(f"alter table {self.table_name()} drop constraint {name}")

    def drop_foreign(self, columns: list[Any], key_name: str | None = None) -> None:
        name = self.index_name("foreign", columns, key_name)
        self.push_query(f"alter table {self.table_name()} drop constraint {name}")
