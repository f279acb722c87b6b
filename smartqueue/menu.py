"""
Static Menu

Items shown on the ordering page. Prices are in rupees; the queue engine
only ever sees the item name.
"""

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class MenuItem:
    name: str
    price: int
    category: str

    def to_dict(self) -> dict:
        return asdict(self)


MENU_ITEMS: tuple[MenuItem, ...] = (
    MenuItem("Vada Pav", 20, "Snacks"),
    MenuItem("Aloo Paratha", 40, "Meals"),
    MenuItem("Samosa", 15, "Snacks"),
    MenuItem("Masala Dosa", 50, "Meals"),
    MenuItem("Chole Bhature", 60, "Meals"),
    MenuItem("Veg Sandwich", 35, "Snacks"),
    MenuItem("Cold Coffee", 30, "Beverages"),
)
