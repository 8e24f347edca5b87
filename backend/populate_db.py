import logging
import os
import sys

import pandas as pd

# Add 'backend' folder to Python path
sys.path.append(os.path.abspath(os.path.dirname(__file__)))

from database import SessionLocal, init_db
from exceptions import DomainError
from models.product import Product
from services import products as registry
from services import stock_resolver
from services import variants as variant_group

logger = logging.getLogger(__name__)

# Configuration
DATA_DIR = os.path.join(os.path.dirname(__file__), "data_source")
CATALOG_CSV = os.path.join(DATA_DIR, "sample_catalog.csv")
SEED_OPERATOR = "seed"
# End Configuration

PRODUCT_COLUMNS = [
    "code", "name", "description", "category", "supplier", "cost",
    "sale_price", "stock_quantity", "min_stock", "location", "image_url",
]


def read_catalog(path: str = CATALOG_CSV) -> pd.DataFrame:
    """Load the sample sheet; empty cells become None."""
    df = pd.read_csv(path, dtype={"code": str, "parent": str, "components": str})
    df["kind"] = df["kind"].str.strip().str.lower()
    return df.astype(object).where(pd.notna(df), None)


def _parse_components(raw):
    # "CO-0210:1;AR-0150:2" -> [("CO-0210", 1), ("AR-0150", 2)]
    pairs = []
    for chunk in (raw or "").split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        code, _, qty = chunk.partition(":")
        pairs.append((registry.norm_code(code), int(qty or 1)))
    return pairs


def load_catalog(db, df: pd.DataFrame) -> dict:
    """Create products, then sets, then variants from the sheet.

    Products go through the registry so opening stock lands in the ledger.
    Rows whose code already exists are skipped; the script can be re-run.
    """
    summary = {"products": 0, "sets": 0, "components": 0, "variants": 0, "skipped": 0}
    by_code = {}

    for kind in ("product", "set"):
        for _, row in df[df["kind"] == kind].iterrows():
            data = {c: row[c] for c in PRODUCT_COLUMNS}
            code = registry.norm_code(data["code"])
            existing = db.query(Product).filter(Product.code == code).first()
            if existing:
                by_code[code] = existing
                summary["skipped"] += 1
                continue
            if kind == "set":
                # Stock of a set is derived from its components
                data["stock_quantity"] = 0
            data["stock_quantity"] = int(data["stock_quantity"] or 0)
            if data["min_stock"] is not None:
                data["min_stock"] = int(data["min_stock"])
            product = registry.create_product(db, data, operator=SEED_OPERATOR)
            by_code[product.code] = product
            summary["products" if kind == "product" else "sets"] += 1

            if kind != "set":
                continue
            for component_code, qty in _parse_components(row["components"]):
                component = by_code.get(component_code)
                if component is None:
                    logger.warning("Set %s lists unknown component %s", product.code, component_code)
                    continue
                stock_resolver.add_component(db, product.id, component.id, qty)
                summary["components"] += 1

    for _, row in df[df["kind"] == "variant"].iterrows():
        parent = by_code.get(registry.norm_code(row["parent"]))
        if parent is None:
            logger.warning("Variant %s points at unknown parent %s", row["name"], row["parent"])
            summary["skipped"] += 1
            continue
        if any(v.name == row["name"] for v in variant_group.list_variants(db, parent.id)):
            summary["skipped"] += 1
            continue
        try:
            variant_group.create_variant(db, parent.id, row["name"], row["description"], row["image_url"])
        except DomainError as e:
            logger.warning("Variant %s of %s skipped: %s", row["name"], parent.code, e.message)
            summary["skipped"] += 1
            continue
        summary["variants"] += 1

    return summary


def populate_database(path: str = CATALOG_CSV):
    """Main execution function to populate database."""
    init_db()
    session = SessionLocal()
    try:
        summary = load_catalog(session, read_catalog(path))
    finally:
        session.close()
    logger.info("Sample catalog loaded: %s", summary)
    return summary


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    populate_database()
