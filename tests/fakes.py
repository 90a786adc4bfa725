"""In-memory stand-in for the subset of the supabase-py client the API uses."""

import itertools
import re
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional


def _split_top_level(expression: str) -> List[str]:
    parts, depth, current = [], 0, ''
    for char in expression:
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
        if char == ',' and depth == 0:
            parts.append(current)
            current = ''
        else:
            current += char
    if current:
        parts.append(current)
    return parts


def _or_filter(expression: str) -> Callable[[Dict[str, Any]], bool]:
    """Build a predicate from a PostgREST ``or`` expression.

    Supports ``col.eq.value`` terms and ``and(...)`` groups.
    """
    predicates = []
    for term in _split_top_level(expression):
        term = term.strip()
        match = re.fullmatch(r'and\((.*)\)', term)
        if match:
            inner = [_or_filter(part) for part in _split_top_level(match.group(1))]
            predicates.append(lambda row, inner=inner: all(p(row) for p in inner))
            continue
        column, operator, value = term.split('.', 2)
        if operator != 'eq':
            raise NotImplementedError(f"Unsupported operator in or filter: {operator}")
        predicates.append(lambda row, column=column, value=value: str(row.get(column)) == value)
    return lambda row: any(p(row) for p in predicates)


class FakeQuery:
    def __init__(self, db: 'FakeSupabase', table: str):
        self.db = db
        self.table_name = table
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.action = 'select'
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.order_by: List[tuple] = []
        self.limit_count: Optional[int] = None

    # actions
    def select(self, *_columns, **_kwargs):
        self.action = 'select'
        return self

    def insert(self, payload):
        self.action, self.payload = 'insert', payload
        return self

    def update(self, payload):
        self.action, self.payload = 'update', payload
        return self

    def delete(self):
        self.action = 'delete'
        return self

    def upsert(self, payload, on_conflict: Optional[str] = None, **_kwargs):
        self.action, self.payload, self.on_conflict = 'upsert', payload, on_conflict
        return self

    # filters
    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self.filters.append(lambda row: row.get(column) in allowed)
        return self

    def is_(self, column, value):
        if value != 'null':
            raise NotImplementedError(f"Unsupported is_ value: {value}")
        self.filters.append(lambda row: row.get(column) is None)
        return self

    def gte(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) >= value)
        return self

    def lt(self, column, value):
        self.filters.append(lambda row: row.get(column) is not None and row.get(column) < value)
        return self

    def or_(self, expression):
        self.filters.append(_or_filter(expression))
        return self

    def order(self, column, desc: bool = False):
        self.order_by.append((column, desc))
        return self

    def limit(self, count):
        self.limit_count = count
        return self

    def _matching(self) -> List[Dict[str, Any]]:
        return [row for row in self.db.rows(self.table_name) if all(f(row) for f in self.filters)]

    def execute(self):
        if self.table_name in self.db.failing_tables:
            raise RuntimeError(f"table {self.table_name} unavailable")
        handler = getattr(self, f'_execute_{self.action}')
        return SimpleNamespace(data=handler())

    def _execute_select(self):
        rows = self._matching()
        for column, desc in reversed(self.order_by):
            rows.sort(key=lambda row: (row.get(column) is None, row.get(column) or ''), reverse=desc)
        if self.limit_count is not None:
            rows = rows[:self.limit_count]
        return [dict(row) for row in rows]

    def _execute_insert(self):
        records = self.payload if isinstance(self.payload, list) else [self.payload]
        return [dict(self.db.add(self.table_name, record)) for record in records]

    def _execute_update(self):
        rows = self._matching()
        for row in rows:
            row.update(self.payload)
        return [dict(row) for row in rows]

    def _execute_delete(self):
        rows = self._matching()
        table = self.db.rows(self.table_name)
        for row in rows:
            table.remove(row)
        return [dict(row) for row in rows]

    def _execute_upsert(self):
        keys = [key.strip() for key in (self.on_conflict or 'id').split(',')]
        for row in self.db.rows(self.table_name):
            if all(row.get(key) == self.payload.get(key) for key in keys):
                row.update(self.payload)
                return [dict(row)]
        return [dict(self.db.add(self.table_name, self.payload))]


class FakeRpc:
    def __init__(self, db: 'FakeSupabase', name: str, params: Dict[str, Any]):
        self.db, self.name, self.params = db, name, params

    def execute(self):
        self.db.rpc_calls.append((self.name, self.params))
        handler = self.db.rpc_handlers.get(self.name)
        return SimpleNamespace(data=handler(self.params) if handler else None)


class FakeAuth:
    def __init__(self):
        self.users: Dict[str, SimpleNamespace] = {}

    def add_session(self, access_token: str, user_id: str, email: str):
        self.users[access_token] = SimpleNamespace(id=user_id, email=email)

    def get_user(self, access_token):
        user = self.users.get(access_token)
        if user is None:
            raise RuntimeError("invalid JWT")
        return SimpleNamespace(user=user)


class FakeBucket:
    def __init__(self, storage: 'FakeStorage', name: str):
        self.storage, self.name = storage, name

    def upload(self, path, file, file_options=None):
        self.storage.objects[f"{self.name}/{path}"] = file
        return SimpleNamespace(path=path)

    def create_signed_url(self, path, expires_in):
        return {"signedURL": f"https://storage.test/{self.name}/{path}?expires={expires_in}"}


class FakeStorage:
    def __init__(self):
        self.objects: Dict[str, bytes] = {}

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.rpc_calls: List[tuple] = []
        self.rpc_handlers: Dict[str, Callable[[Dict[str, Any]], Any]] = {}
        self.failing_tables: set = set()
        self.auth = FakeAuth()
        self.storage = FakeStorage()
        self._ids = itertools.count(1)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    def add(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        row = dict(record)
        row.setdefault('id', f"{table.replace('_', '-')}-{next(self._ids)}")
        row.setdefault('created_at', datetime.now(timezone.utc).isoformat())
        self.rows(table).append(row)
        return row

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, name, params)
