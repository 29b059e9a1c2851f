"""
Profitability Report - margin math and category aggregation over the catalog.

Margin is base price minus cost; margin % is margin over base price.
Only products carrying a positive cost take part in the report.
"""
import csv
import io
from datetime import datetime
from typing import Iterable, Optional

import pandas as pd

UNCATEGORIZED = 'Uncategorized'

# (lower bound %, bucket, display colour); checked top-down
MARGIN_BUCKETS = (
    (50.0, 'excellent', 'green-600'),
    (30.0, 'good', 'green-500'),
    (10.0, 'fair', 'yellow-600'),
)
FLOOR_BUCKET = ('poor', 'red-600')

PRODUCT_COLUMNS = ['id', 'name', 'sku', 'category', 'type', 'currency', 'base_price', 'cost']


def margin(base_price: float, cost: Optional[float]) -> float:
    return float(base_price or 0) - float(cost or 0)


def margin_percent(base_price: float, cost: Optional[float]) -> float:
    """Margin as a percentage of price; 0 when there is no price."""
    base_price = float(base_price or 0)
    if base_price <= 0:
        return 0.0
    return margin(base_price, cost) / base_price * 100


def margin_bucket(pct: float) -> str:
    for lower, bucket, _ in MARGIN_BUCKETS:
        if pct >= lower:
            return bucket
    return FLOOR_BUCKET[0]


def bucket_color(bucket: str) -> str:
    for _, name, color in MARGIN_BUCKETS:
        if name == bucket:
            return color
    return FLOOR_BUCKET[1]


def _products_frame(products: Iterable) -> pd.DataFrame:
    rows = [
        {
            'id': p.id,
            'name': p.name,
            'sku': p.sku or '',
            'category': p.category or UNCATEGORIZED,
            'type': p.type,
            'currency': p.currency,
            'base_price': float(p.base_price or 0),
            'cost': float(p.cost or 0),
        }
        for p in products
    ]
    return pd.DataFrame(rows, columns=PRODUCT_COLUMNS)


def _with_margins(df: pd.DataFrame, revenue_col: str) -> pd.DataFrame:
    df = df.copy()
    df['margin'] = df[revenue_col] - df['cost']
    pct = (df['margin'] / df[revenue_col].where(df[revenue_col] > 0)) * 100
    df['margin_percent'] = pct.fillna(0.0).astype(float)
    return df


def build_report(products: Iterable, top_n: int = 10) -> dict:
    """
    Build the profitability report.

    Args:
        products: catalog products (anything with name/sku/category/type/
            currency/base_price/cost attributes)
        top_n: size of the top-margin list

    Returns:
        Dict with summary, by_category, products, top_products and buckets
    """
    df = _products_frame(products)
    total_products = len(df)

    costed = _with_margins(df[df['cost'] > 0], 'base_price')
    costed = costed.sort_values('margin', ascending=False, kind='mergesort')
    costed['bucket'] = costed['margin_percent'].map(margin_bucket).astype(object)
    costed['bucket_color'] = costed['bucket'].map(bucket_color).astype(object)

    total_revenue = float(costed['base_price'].sum())
    total_cost = float(costed['cost'].sum())
    total_margin = total_revenue - total_cost

    summary = {
        'total_products': total_products,
        'products_with_cost': int(len(costed)),
        'total_revenue': total_revenue,
        'total_cost': total_cost,
        'total_margin': total_margin,
        'overall_margin_percent': (total_margin / total_revenue * 100) if total_revenue > 0 else 0.0,
    }

    if costed.empty:
        by_category = pd.DataFrame(columns=['category', 'count', 'revenue', 'cost', 'margin', 'margin_percent'])
    else:
        by_category = (
            costed.groupby('category', sort=False)
            .agg(count=('name', 'count'), revenue=('base_price', 'sum'), cost=('cost', 'sum'))
            .reset_index()
        )
        by_category = _with_margins(by_category, 'revenue')
        by_category = by_category.sort_values('margin', ascending=False, kind='mergesort')

    product_rows = costed.to_dict(orient='records')
    buckets = {name: 0 for _, name, _ in MARGIN_BUCKETS}
    buckets[FLOOR_BUCKET[0]] = 0
    for row in product_rows:
        buckets[row['bucket']] += 1

    return {
        'generated_at': datetime.now().isoformat(),
        'summary': summary,
        'by_category': by_category.to_dict(orient='records'),
        'products': product_rows,
        'top_products': product_rows[:top_n],
        'buckets': buckets,
    }


def report_csv(report: dict) -> str:
    """Render the report as a three-section CSV document."""
    summary = report['summary']
    out = io.StringIO()
    writer = csv.writer(out, lineterminator='\n')
    quoted = csv.writer(out, quoting=csv.QUOTE_ALL, lineterminator='\n')

    writer.writerow(['PROFITABILITY REPORT SUMMARY'])
    writer.writerow([])
    writer.writerow(['Total Products', summary['total_products']])
    writer.writerow(['Products with Cost Data', summary['products_with_cost']])
    writer.writerow(['Total Revenue Potential', f"{summary['total_revenue']:.2f}"])
    writer.writerow(['Total Cost', f"{summary['total_cost']:.2f}"])
    writer.writerow(['Total Margin', f"{summary['total_margin']:.2f}"])
    writer.writerow(['Overall Margin %', f"{summary['overall_margin_percent']:.2f}%"])
    writer.writerow([])
    writer.writerow([])

    writer.writerow(['PROFITABILITY BY CATEGORY'])
    writer.writerow(['Category', 'Product Count', 'Revenue', 'Cost', 'Margin', 'Margin %'])
    for row in report['by_category']:
        quoted.writerow([
            row['category'],
            int(row['count']),
            f"{row['revenue']:.2f}",
            f"{row['cost']:.2f}",
            f"{row['margin']:.2f}",
            f"{row['margin_percent']:.2f}%",
        ])
    writer.writerow([])
    writer.writerow([])

    writer.writerow(['ALL PRODUCTS BY MARGIN'])
    writer.writerow(['Product Name', 'SKU', 'Category', 'Type', 'Price', 'Cost', 'Margin', 'Margin %'])
    for row in report['products']:
        quoted.writerow([
            row['name'],
            row['sku'],
            row['category'],
            row['type'],
            f"{row['base_price']:.2f}",
            f"{row['cost']:.2f}",
            f"{row['margin']:.2f}",
            f"{row['margin_percent']:.2f}%",
        ])

    return out.getvalue()


def report_excel(report: dict) -> bytes:
    """Render the report as an xlsx workbook (Summary, By Category, Products)."""
    summary = pd.DataFrame(
        [(k.replace('_', ' ').title(), v) for k, v in report['summary'].items()],
        columns=['Metric', 'Value'],
    )
    by_category = pd.DataFrame(
        report['by_category'],
        columns=['category', 'count', 'revenue', 'cost', 'margin', 'margin_percent'],
    )
    products = pd.DataFrame(
        report['products'],
        columns=PRODUCT_COLUMNS + ['margin', 'margin_percent', 'bucket'],
    )

    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        summary.to_excel(writer, sheet_name='Summary', index=False)
        by_category.to_excel(writer, sheet_name='By Category', index=False)
        products.to_excel(writer, sheet_name='Products', index=False)
    return buffer.getvalue()
