# application/services/folder_tree.py
from __future__ import annotations
from typing import Any, Iterable, Mapping

FolderTree = Mapping[str, Mapping[str, Any]]

MAX_DEPTH = 64


def build_folder_tree(folders: Iterable[tuple[Any, Any, str]]) -> dict[str, dict[str, Any]]:
    """
    Convierte la lista plana de LIST (flags, delimitador, nombre) en el árbol
    {nombre: {"children": {...}}}. Un nodo sin hijos queda como {}.
    """
    tree: dict[str, dict[str, Any]] = {}
    for _flags, delimiter, name in folders:
        if isinstance(delimiter, bytes):
            delimiter = delimiter.decode("ascii", "replace")
        parts = name.split(delimiter) if delimiter else [name]
        level = tree
        for i, part in enumerate(parts):
            node = level.setdefault(part, {})
            if i < len(parts) - 1:
                level = node.setdefault("children", {})
    return tree


def resolve_folder_paths(tree: FolderTree, prefix: str = "", *, _depth: int = 0, _seen: frozenset[int] = frozenset()) -> list[str]:
    """
    Recorre el árbol y devuelve las rutas "a/b/c" de cada carpeta hoja,
    en el orden de iteración de cada nivel.
    Falla en cuanto detecta un ciclo o una profundidad anómala.
    """
    if _depth > MAX_DEPTH:
        raise ValueError(f"Árbol de carpetas demasiado profundo (>{MAX_DEPTH}) en '{prefix}'")
    if id(tree) in _seen:
        raise ValueError(f"Ciclo detectado en el árbol de carpetas en '{prefix}'")
    seen = _seen | {id(tree)}

    paths: list[str] = []
    for name, node in tree.items():
        path = f"{prefix}/{name}" if prefix else name
        children = (node or {}).get("children")
        if children:
            paths.extend(resolve_folder_paths(children, path, _depth=_depth + 1, _seen=seen))
        else:
            paths.append(path)
    return paths
