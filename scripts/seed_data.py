#!/usr/bin/env python
"""
Seed demo data - products, bundles, discounts, terms and a console session.

Each collection is only seeded when empty, so the script can be re-run.

Usage:
    python scripts/seed_data.py
"""
import sys
from datetime import date, timedelta
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from crm_console.api.state import build_services
from crm_console.config.settings import get_settings

ACME = 'acct-acme'
GLOBEX = 'acct-globex'

PRODUCTS = [
    # sku, name, type, base price, cost, category, tags
    ('SRV-CON-001', 'Strategic Planning Consultation', 'service', 2500.00, 800.00, 'Consulting', ['strategy', 'planning', 'enterprise']),
    ('SRV-CON-002', 'Business Process Optimization', 'service', 3500.00, 1200.00, 'Consulting', ['optimization', 'process', 'efficiency']),
    ('SRV-CON-003', 'Digital Transformation Assessment', 'service', 5000.00, 1800.00, 'Consulting', ['digital', 'transformation', 'technology']),
    ('PROD-CRM-001', 'CRM Professional License', 'product', 99.00, 25.00, 'Software', ['crm', 'software', 'subscription']),
    ('PROD-CRM-002', 'CRM Enterprise License', 'product', 299.00, 75.00, 'Software', ['crm', 'enterprise', 'subscription']),
    ('PROD-ANALYTICS-001', 'Business Analytics Dashboard', 'product', 199.00, 50.00, 'Software', ['analytics', 'reporting', 'dashboard']),
    ('SRV-SUP-001', 'Basic Support Plan', 'service', 199.00, 100.00, 'Support', ['support', 'basic', 'monthly']),
    ('SRV-SUP-002', 'Premium Support Plan', 'service', 499.00, 250.00, 'Support', ['support', 'premium', 'monthly']),
    ('SRV-SUP-003', 'Enterprise Support Plan', 'service', 1299.00, 650.00, 'Support', ['support', 'enterprise', 'monthly']),
    ('SRV-TRN-001', 'User Training Workshop', 'service', 1500.00, 600.00, 'Training', ['training', 'users']),
    ('SRV-TRN-002', 'Administrator Training', 'service', 2500.00, 1000.00, 'Training', ['training', 'admin']),
    ('SRV-TRN-003', 'Custom Training Program', 'service', 4500.00, 1800.00, 'Training', ['training', 'custom']),
    ('SRV-IMP-001', 'Standard Implementation', 'service', 7500.00, 3000.00, 'Implementation', ['implementation', 'standard']),
    ('SRV-IMP-002', 'Enterprise Implementation', 'service', 25000.00, 10000.00, 'Implementation', ['implementation', 'enterprise']),
    ('SRV-INT-001', 'API Integration Service', 'service', 3500.00, 1400.00, 'Integration', ['integration', 'api']),
    ('SRV-INT-002', 'Data Migration Service', 'service', 5000.00, 2000.00, 'Integration', ['integration', 'migration']),
    ('SRV-DEV-001', 'Custom Development (Hourly)', 'service', 150.00, 75.00, 'Development', ['development', 'hourly']),
]

STANDARD_TERMS = """TERMS AND CONDITIONS

1. PAYMENT TERMS
   - Payment is due within 30 days of invoice date.
   - Late payments may incur a 1.5% monthly interest charge.
   - All prices are in USD unless otherwise specified.

2. WARRANTIES
   - Services will be performed in a professional manner.

3. LIMITATION OF LIABILITY
   - Liability is limited to the amount paid for the specific service.

4. TERMINATION
   - Either party may terminate with 30 days written notice."""

ENTERPRISE_TERMS = """ENTERPRISE TERMS AND CONDITIONS

1. PAYMENT TERMS
   - Payment is due within 45 days of invoice date for enterprise accounts.
   - Volume discounts apply for annual commitments.

2. SERVICE LEVEL AGREEMENTS
   - 99.9% uptime guarantee for software services.
   - 4-hour response time for critical support issues.

3. RENEWAL AND TERMINATION
   - Annual agreements auto-renew unless terminated 60 days prior."""


def seed_products(services):
    if services.store.count('products'):
        print(f"  products: {services.store.count('products')} present, skipping")
        return
    for sku, name, type_, price, cost, category, tags in PRODUCTS:
        services.catalog.create_product({
            'sku': sku, 'name': name, 'type': type_, 'base_price': price, 'cost': cost,
            'tax_rate': 8.5, 'category': category, 'tags': tags,
        })
    print(f"  products: seeded {len(PRODUCTS)}")


def seed_bundles(services, by_sku):
    if services.store.count('bundles'):
        print(f"  bundles: {services.store.count('bundles')} present, skipping")
        return

    def items(*skus):
        return [{'product_id': by_sku[s], 'quantity': 1} for s in skus if s in by_sku]

    bundles = [
        ('BUNDLE-001', 'Complete CRM Package', 1997.00, 'Software',
         items('PROD-CRM-001', 'SRV-SUP-001', 'SRV-TRN-001')),
        ('BUNDLE-002', 'Enterprise Solution Bundle', 34997.00, 'Software',
         items('PROD-CRM-002', 'SRV-SUP-002', 'SRV-TRN-002', 'SRV-IMP-001')),
        ('BUNDLE-003', 'Training & Support Bundle', 3997.00, 'Support',
         items('SRV-TRN-001', 'SRV-TRN-002', 'SRV-SUP-002')),
    ]
    for sku, name, price, category, bundle_items in bundles:
        services.bundles.create_bundle({
            'sku': sku, 'name': name, 'bundle_price': price, 'category': category, 'items': bundle_items,
        })
    print(f"  bundles: seeded {len(bundles)}")


def seed_discounts(services, by_sku):
    if services.store.count('discounts'):
        print(f"  discounts: {services.store.count('discounts')} present, skipping")
        return

    today = date.today()
    start = today.isoformat()
    next_month = (today + timedelta(days=30)).isoformat()
    next_year = (today + timedelta(days=365)).isoformat()
    software = [by_sku[s] for s in ('PROD-CRM-001', 'PROD-CRM-002', 'PROD-ANALYTICS-001') if s in by_sku]
    support = [by_sku[s] for s in ('SRV-SUP-001', 'SRV-SUP-002', 'SRV-SUP-003') if s in by_sku]
    bundle_ids = [b.id for b in services.bundles.list_bundles()][:3]

    discounts = [
        {'code': 'WELCOME10', 'name': 'Welcome Discount', 'type': 'percentage', 'value': 10,
         'scope': 'global', 'min_amount': 100, 'max_discount': 1000, 'usage_limit': 100},
        {'code': 'BULK20', 'name': 'Bulk Purchase Discount', 'type': 'percentage', 'value': 20,
         'scope': 'global', 'min_amount': 5000, 'max_discount': 5000, 'usage_limit': 50},
        {'code': 'Q1SALE', 'name': 'Q1 Sale', 'type': 'percentage', 'value': 15,
         'scope': 'product', 'product_ids': software, 'usage_limit': 200, 'end_date': next_month},
        {'code': 'SUPPORT50', 'name': 'Support Plan Discount', 'type': 'fixed', 'value': 50,
         'scope': 'product', 'product_ids': support, 'min_amount': 199, 'usage_limit': 100},
        {'code': 'ENTERPRISE', 'name': 'Enterprise Account Discount', 'type': 'percentage', 'value': 10,
         'scope': 'account', 'account_ids': [ACME, GLOBEX]},
        {'code': 'BUNDLE5', 'name': 'Bundle Discount', 'type': 'percentage', 'value': 5,
         'scope': 'bundle', 'bundle_ids': bundle_ids, 'usage_limit': 50},
        {'code': 'VOLUME', 'name': 'Volume Tiers', 'type': 'tiered', 'scope': 'global',
         'tiers': [{'min_amount': 10000, 'value': 5}, {'min_amount': 25000, 'value': 8},
                   {'min_amount': 50000, 'value': 12}]},
    ]
    for discount in discounts:
        discount.setdefault('start_date', start)
        discount.setdefault('end_date', next_year)
        services.discounts.create_discount(discount)
    print(f"  discounts: seeded {len(discounts)}")


def seed_terms(services):
    if services.store.count('custom_terms'):
        print(f"  terms: {services.store.count('custom_terms')} present, skipping")
        return
    services.terms.create_terms({
        'name': 'Standard Terms and Conditions',
        'description': 'Default terms for all quotes and invoices',
        'content': STANDARD_TERMS,
        'is_default': True,
    })
    services.terms.create_terms({
        'name': 'Enterprise Terms',
        'description': 'Extended terms for enterprise accounts',
        'content': ENTERPRISE_TERMS,
        'account_ids': [ACME, GLOBEX],
    })
    print("  terms: seeded 2")


def main():
    settings = get_settings()
    services = build_services(settings)

    print("=" * 60)
    print("CRM CONSOLE SEED")
    print(f"Data directory: {settings.data_dir}")
    print("=" * 60)

    seed_products(services)
    by_sku = {p.sku: p.id for p in services.catalog.all_products() if p.sku}
    seed_bundles(services, by_sku)
    seed_discounts(services, by_sku)
    seed_terms(services)

    session = services.sessions.create_session(
        user_id='admin', email='admin@example.com', name='Console Admin', user_agent='seed script',
    )
    print()
    print("Console session token (send as 'Authorization: Bearer <token>'):")
    print(f"  {session.jti}")


if __name__ == "__main__":
    main()
