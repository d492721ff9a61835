from typing import Optional, Sequence

from rapidfuzz.distance import Levenshtein


EXPENSE_CATEGORIES: tuple[str, ...] = (
    "Matériaux",
    "Main-d'œuvre",
    "Plomberie",
    "Électricité",
    "Peinture",
    "Carrelage",
    "Parquet",
    "Menuiserie",
    "Cloisons",
    "Isolation",
    "Chauffage",
    "Outillage",
    "Transport",
    "Nettoyage",
    "Autre",
)

ROOMS: tuple[str, ...] = (
    "Cuisine",
    "Salon",
    "Salle de bain",
    "Chambre",
    "Bureau",
    "Couloir",
    "Entrée",
    "Balcon",
    "Cave",
    "Grenier",
    "Garage",
    "Général",
    "Autre",
)


class AmbiguousLabel(ValueError):
    pass


def resolve_label(
    value: str, catalog: Sequence[str], *, max_distance: int = 1
) -> str:
    """Snap ``value`` onto its canonical catalog spelling.

    Matching is case-insensitive; a unique entry within ``max_distance`` edits
    wins. Labels far from every entry are kept as typed (trimmed), since the
    catalog is a suggestion list and users may track their own rooms.
    """
    clean = value.strip()
    if not clean:
        raise ValueError("Label cannot be empty")

    input_lower = clean.lower()
    for entry in catalog:
        if entry.lower() == input_lower:
            return entry

    best_distance: Optional[int] = None
    best: list[str] = []
    for entry in catalog:
        dist = int(Levenshtein.distance(input_lower, entry.lower()))
        if best_distance is None or dist < best_distance:
            best_distance = dist
            best = [entry]
        elif dist == best_distance:
            best.append(entry)

    if best_distance is None or best_distance > max_distance:
        return clean
    if len(best) > 1:
        options = ", ".join(sorted(best))
        raise AmbiguousLabel(f"Label '{clean}' is ambiguous; matches: {options}")
    return best[0]


def resolve_category(value: str) -> str:
    return resolve_label(value, EXPENSE_CATEGORIES)


def resolve_room(value: str) -> str:
    return resolve_label(value, ROOMS)
