from fitly.models.product import Product, Variant

__all__ = ["Product", "Variant"]
