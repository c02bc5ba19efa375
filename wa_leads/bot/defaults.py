"""Process-wide tree used for tenants that have not configured their own."""

from __future__ import annotations

from typing import Any

from .tree import Tree
from .validator import validate_tree

DEFAULT_TREE_DEFINITION: dict[str, Any] = {
    "nodes": {
        "start": {
            "type": "list",
            "body": "¿Qué te interesa?",
            "saveAs": "service",
            "options": [
                {"id": "rent", "title": "Renta", "next": "date"},
                {"id": "dj", "title": "DJ", "next": "date"},
                {"id": "quote", "title": "Cotización", "next": "date"},
            ],
        },
        "date": {
            "type": "text",
            "body": "¿Para qué fecha lo necesitas?",
            "saveAs": "date",
            "next": "city",
        },
        "city": {
            "type": "buttons",
            "body": "¿En qué ciudad será el evento?",
            "saveAs": "city",
            "options": [
                {"id": "saltillo", "title": "Saltillo", "next": "budget"},
                {"id": "ramos", "title": "Ramos", "next": "budget"},
                {"id": "arteaga", "title": "Arteaga", "next": "budget"},
            ],
        },
        "budget": {
            "type": "buttons",
            "body": "¿Cuál es tu presupuesto aproximado?",
            "saveAs": "budget",
            "options": [
                {"id": "$", "title": "$", "next": "done"},
                {"id": "$$", "title": "$$", "next": "done"},
                {"id": "$$$", "title": "$$$", "next": "done"},
            ],
        },
        "done": {
            "type": "end",
            "body": (
                "Gracias. Ya tengo tus datos; en breve te contactamos para darte "
                "seguimiento."
            ),
        },
    }
}

DEFAULT_TREE: Tree = validate_tree(DEFAULT_TREE_DEFINITION)
