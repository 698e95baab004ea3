from storefront.demo.catalog import DEMO_CUSTOMER_ID, DEMO_PRODUCTS, seed_catalog

__all__ = ["DEMO_CUSTOMER_ID", "DEMO_PRODUCTS", "seed_catalog"]
