"""storefront - e-commerce backend with transactional inventory deduction."""

__version__ = "0.1.0"
