import csv
import io

import openpyxl
import pytest

from crm_console.reports.profitability import (
    build_report, report_csv, report_excel,
    margin, margin_percent, margin_bucket, bucket_color,
)
from crm_console.services.catalog_service import Product


@pytest.fixture
def products():
    return [
        Product(id='p1', name='Licence', sku='LIC', category='Software', base_price=100, cost=40),
        Product(id='p2', name='Hardware', sku='HW', category='Software', base_price=200, cost=150),
        Product(id='p3', name='Cable', sku='CBL', category=None, base_price=50, cost=48),
        Product(id='p4', name='Freebie', sku='FREE', category='Software', base_price=80),
    ]


def test_margin_math():
    assert margin(100, 40) == 60
    assert margin_percent(100, 40) == 60
    assert margin_percent(0, 5) == 0.0
    assert margin_percent(-10, 5) == 0.0


@pytest.mark.parametrize("pct,bucket", [
    (75, 'excellent'),
    (50, 'excellent'),
    (49.99, 'good'),
    (30, 'good'),
    (10, 'fair'),
    (9.99, 'poor'),
    (-20, 'poor'),
])
def test_margin_buckets(pct, bucket):
    assert margin_bucket(pct) == bucket


def test_bucket_colors():
    assert bucket_color('excellent') == 'green-600'
    assert bucket_color('good') == 'green-500'
    assert bucket_color('fair') == 'yellow-600'
    assert bucket_color('poor') == 'red-600'


def test_summary_only_counts_costed_products(products):
    summary = build_report(products)['summary']

    assert summary['total_products'] == 4
    assert summary['products_with_cost'] == 3
    assert summary['total_revenue'] == 350.0
    assert summary['total_cost'] == 238.0
    assert summary['total_margin'] == 112.0
    assert summary['overall_margin_percent'] == pytest.approx(32.0)


def test_by_category_sorted_by_margin(products):
    by_category = build_report(products)['by_category']

    assert [c['category'] for c in by_category] == ['Software', 'Uncategorized']
    software = by_category[0]
    assert software['count'] == 2
    assert software['revenue'] == 300.0
    assert software['cost'] == 190.0
    assert software['margin'] == 110.0
    assert software['margin_percent'] == pytest.approx(36.6667, rel=1e-4)


def test_products_ranked_with_buckets(products):
    report = build_report(products, top_n=2)

    assert [p['id'] for p in report['products']] == ['p1', 'p2', 'p3']
    assert [p['id'] for p in report['top_products']] == ['p1', 'p2']
    assert [p['bucket'] for p in report['products']] == ['excellent', 'fair', 'poor']
    assert report['products'][0]['bucket_color'] == 'green-600'
    assert report['buckets'] == {'excellent': 1, 'good': 0, 'fair': 1, 'poor': 1}


def test_empty_catalog():
    report = build_report([])

    assert report['summary']['total_products'] == 0
    assert report['summary']['overall_margin_percent'] == 0.0
    assert report['by_category'] == []
    assert report['products'] == []


def test_csv_has_three_sections(products):
    text = report_csv(build_report(products))

    assert text.index('PROFITABILITY REPORT SUMMARY') < text.index('PROFITABILITY BY CATEGORY')
    assert text.index('PROFITABILITY BY CATEGORY') < text.index('ALL PRODUCTS BY MARGIN')
    assert '"Software","2","300.00","190.00","110.00","36.67%"' in text
    assert '"Licence","LIC","Software","product","100.00","40.00","60.00","60.00%"' in text

    rows = list(csv.reader(io.StringIO(text)))
    assert ['Overall Margin %', '32.00%'] in rows


def test_excel_workbook_sheets(products):
    data = report_excel(build_report(products))

    workbook = openpyxl.load_workbook(io.BytesIO(data))
    assert workbook.sheetnames == ['Summary', 'By Category', 'Products']
    assert workbook['Products'].max_row == 4  # header + 3 costed products
