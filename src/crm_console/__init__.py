"""
CRM Console Package

Backend for the CRM administrative console: product catalog, bundles,
discounts, custom terms and the terms review ledger, invoicing, and
user sessions/preferences. Profitability reporting and quote pricing
run server-side over the stored catalog.
"""

__version__ = "1.0.0"
