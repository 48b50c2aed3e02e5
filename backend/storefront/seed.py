"""
Starter catalog, inserted on startup when the categories table is empty.
"""

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from storefront import models

logger = logging.getLogger("storefront.seed")

IMG = "https://images.unsplash.com/photo-{}?w=800"

CATEGORIES = [
    {
        "name": "Rings",
        "slug": "rings",
        "description": "Exquisite diamond and gemstone rings crafted to perfection",
        "image_url": IMG.format("1605100804763-247f67b3557e"),
    },
    {
        "name": "Necklaces",
        "slug": "necklaces",
        "description": "Elegant necklaces and pendants for every occasion",
        "image_url": IMG.format("1599643478518-a784e5dc4c8f"),
    },
    {
        "name": "Bracelets",
        "slug": "bracelets",
        "description": "Stunning bracelets in gold, silver, and platinum",
        "image_url": IMG.format("1611591437281-460bfbe1220a"),
    },
    {
        "name": "Earrings",
        "slug": "earrings",
        "description": "Beautiful earrings from studs to statement pieces",
        "image_url": IMG.format("1535632066927-ab7c9ab60908"),
    },
]

# "category" is a category slug, resolved at insert time
PRODUCTS = [
    {
        "name": "Eternal Diamond Solitaire Ring",
        "slug": "eternal-diamond-solitaire-ring",
        "description": "A breathtaking 1.5 carat round brilliant diamond set in 18k white gold. This timeless "
                       "solitaire ring features exceptional clarity and fire, perfect for marking life's most "
                       "precious moments.",
        "price": "8950.00",
        "compare_at_price": "10500.00",
        "category": "rings",
        "images": [IMG.format("1605100804763-247f67b3557e"), IMG.format("1602751584552-8ba73aad10e1")],
        "material": "18k White Gold",
        "gemstone": "Diamond",
        "weight": "3.2g",
        "dimensions": "Band width: 2mm",
        "stock_quantity": 5,
        "is_featured": True,
    },
    {
        "name": "Sapphire Halo Engagement Ring",
        "slug": "sapphire-halo-engagement-ring",
        "description": "A stunning 2 carat Ceylon blue sapphire surrounded by brilliant cut diamonds in a "
                       "delicate halo setting. Set in 18k rose gold for a romantic touch.",
        "price": "12500.00",
        "category": "rings",
        "images": [IMG.format("1551122087-f99a4ade5734")],
        "material": "18k Rose Gold",
        "gemstone": "Sapphire & Diamonds",
        "weight": "4.1g",
        "stock_quantity": 3,
        "is_featured": True,
        "is_new_arrival": True,
    },
    {
        "name": "Vintage Pearl Strand Necklace",
        "slug": "vintage-pearl-strand-necklace",
        "description": "An exquisite strand of 45 perfectly matched Akoya pearls with exceptional luster. "
                       "Features a 14k white gold clasp adorned with diamonds.",
        "price": "4200.00",
        "category": "necklaces",
        "images": [IMG.format("1599643478518-a784e5dc4c8f")],
        "material": "14k White Gold",
        "gemstone": "Akoya Pearls",
        "weight": "28g",
        "dimensions": "Length: 18 inches",
        "stock_quantity": 8,
        "is_featured": True,
    },
    {
        "name": "Emerald Drop Pendant",
        "slug": "emerald-drop-pendant",
        "description": "A magnificent 3 carat Colombian emerald pendant with diamond accents, suspended from "
                       "an 18k yellow gold chain. The rich green color is truly captivating.",
        "price": "15800.00",
        "category": "necklaces",
        "images": [IMG.format("1515562141207-7a88fb7ce338")],
        "material": "18k Yellow Gold",
        "gemstone": "Colombian Emerald",
        "weight": "8.5g",
        "dimensions": "Chain: 16 inches",
        "stock_quantity": 2,
        "is_featured": True,
        "is_new_arrival": True,
    },
    {
        "name": "Diamond Tennis Bracelet",
        "slug": "diamond-tennis-bracelet",
        "description": "Classic elegance redefined with 5 carats of round brilliant diamonds set in 18k white "
                       "gold. Each diamond is hand-selected for exceptional brilliance.",
        "price": "9800.00",
        "compare_at_price": "12000.00",
        "category": "bracelets",
        "images": [IMG.format("1611591437281-460bfbe1220a")],
        "material": "18k White Gold",
        "gemstone": "Diamonds",
        "weight": "12g",
        "dimensions": "Length: 7 inches",
        "stock_quantity": 4,
        "is_featured": True,
    },
    {
        "name": "Gold Chain Link Bracelet",
        "slug": "gold-chain-link-bracelet",
        "description": "A bold statement piece featuring interlocking oval links in polished 18k yellow gold. "
                       "Modern design meets timeless craftsmanship.",
        "price": "3400.00",
        "category": "bracelets",
        "images": [IMG.format("1573408301185-9146fe634ad0")],
        "material": "18k Yellow Gold",
        "weight": "18g",
        "dimensions": "Length: 7.5 inches",
        "stock_quantity": 6,
        "is_new_arrival": True,
    },
    {
        "name": "Diamond Stud Earrings",
        "slug": "diamond-stud-earrings",
        "description": "Timeless 1 carat total weight diamond studs in platinum four-prong settings. Perfect "
                       "for everyday elegance or special occasions.",
        "price": "4500.00",
        "category": "earrings",
        "images": [IMG.format("1535632066927-ab7c9ab60908")],
        "material": "Platinum",
        "gemstone": "Diamonds",
        "weight": "2.4g",
        "stock_quantity": 10,
        "is_featured": True,
    },
    {
        "name": "Ruby Drop Earrings",
        "slug": "ruby-drop-earrings",
        "description": "Stunning 2 carat total weight Burmese rubies with diamond halos, elegantly suspended "
                       "in 18k white gold. The deep red color is mesmerizing.",
        "price": "8200.00",
        "category": "earrings",
        "images": [IMG.format("1629224316810-9d8805b95e76")],
        "material": "18k White Gold",
        "gemstone": "Burmese Ruby & Diamonds",
        "weight": "5.8g",
        "stock_quantity": 3,
        "is_featured": True,
        "is_new_arrival": True,
    },
    {
        "name": "Platinum Wedding Band",
        "slug": "platinum-wedding-band",
        "description": "A refined platinum band with a brushed center and polished edges. Comfort-fit design "
                       "for everyday wear. Symbol of eternal love.",
        "price": "1850.00",
        "category": "rings",
        "images": [IMG.format("1611652022419-a9419f74343d")],
        "material": "Platinum",
        "weight": "6.5g",
        "dimensions": "Width: 5mm",
        "stock_quantity": 15,
    },
    {
        "name": "Art Deco Diamond Pendant",
        "slug": "art-deco-diamond-pendant",
        "description": "Inspired by 1920s glamour, this geometric pendant features baguette and round "
                       "diamonds totaling 1.8 carats in 18k white gold.",
        "price": "6700.00",
        "category": "necklaces",
        "images": [IMG.format("1611107683227-e9060eccd846")],
        "material": "18k White Gold",
        "gemstone": "Diamonds",
        "weight": "5.2g",
        "dimensions": "Chain: 18 inches",
        "stock_quantity": 4,
        "is_new_arrival": True,
    },
]


def seed_catalog(db: Session) -> bool:
    """Insert the starter catalog in one transaction. Returns False if already seeded."""
    if db.query(models.Category).first() is not None:
        return False

    logger.info("Seeding database with luxury jewelry...")
    categories = {}
    for data in CATEGORIES:
        category = models.Category(**data)
        db.add(category)
        categories[data["slug"]] = category
    db.flush()

    for data in PRODUCTS:
        data = dict(data)
        category = categories[data.pop("category")]
        data["price"] = Decimal(data["price"])
        if "compare_at_price" in data:
            data["compare_at_price"] = Decimal(data["compare_at_price"])
        db.add(models.Product(category_id=category.id, in_stock=True, **data))

    db.commit()
    logger.info("Seeded %d categories and %d products", len(CATEGORIES), len(PRODUCTS))
    return True
