"""
Document-rendering collaborator for salary slips.

Takes a fully-resolved slip payload and returns bytes, or raises
DocumentRenderingError. The payroll core never looks inside the document.
"""
import html
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict

logger = logging.getLogger(__name__)

MONTH_NAMES = ["", "January", "February", "March", "April", "May", "June",
               "July", "August", "September", "October", "November", "December"]


class DocumentRenderingError(Exception):
    pass


def _money(value) -> str:
    return f"{Decimal(str(value or 0)):,.2f}"


def render_salary_slip(payload: Dict[str, Any]) -> bytes:
    """
    Render a salary slip as a standalone HTML document.

    Expected keys: employee_name, employee_id, month, year, basic_salary,
    total_working_days, actual_working_days, unpaid_leaves, gross_salary,
    total_additions, total_deductions, net_salary, components.
    """
    try:
        month = int(payload["month"])
        month_name = MONTH_NAMES[month] if 1 <= month <= 12 else str(month)
        period = f"{month_name} {payload['year']}"

        rows = ""
        for comp in payload.get("components", []):
            sign = "+" if comp["component_type"] == "addition" else "-"
            rows += (
                f"<tr><td>{html.escape(comp['component_name'])}</td>"
                f"<td style='text-align:right'>{sign} {_money(comp['amount'])}</td></tr>"
            )

        document = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <title>Salary Slip - {period}</title>
        <style>
            body {{ font-family: Arial, sans-serif; margin: 40px; color: #333; }}
            .header {{ text-align: center; margin-bottom: 30px; border-bottom: 2px solid #2563eb; padding-bottom: 20px; }}
            .header h1 {{ color: #2563eb; margin: 0; }}
            table {{ width: 100%; border-collapse: collapse; margin: 20px 0; }}
            th, td {{ padding: 12px; text-align: left; border-bottom: 1px solid #e2e8f0; }}
            th {{ background: #f1f5f9; color: #1e40af; font-weight: 600; }}
            .total-row {{ background: #2563eb; color: white; font-weight: bold; }}
            .footer {{ margin-top: 40px; text-align: center; color: #666; font-size: 12px; }}
        </style>
    </head>
    <body>
        <div class="header">
            <h1>SALARY SLIP</h1>
            <p>{period}</p>
        </div>
        <p><strong>Name:</strong> {html.escape(str(payload['employee_name']))}</p>
        <p><strong>Employee ID:</strong> {payload['employee_id']}</p>
        <p><strong>Working days:</strong> {payload['actual_working_days']} of {payload['total_working_days']}
           ({payload['unpaid_leaves']} unpaid leave day(s))</p>
        <table>
            <thead>
                <tr><th>Description</th><th style="text-align: right">Amount</th></tr>
            </thead>
            <tbody>
                <tr><td>Basic Salary</td><td style="text-align: right">{_money(payload['basic_salary'])}</td></tr>
                {rows}
                <tr><td>Total Additions</td><td style="text-align: right">+ {_money(payload['total_additions'])}</td></tr>
                <tr><td>Total Deductions</td><td style="text-align: right">- {_money(payload['total_deductions'])}</td></tr>
                <tr class="total-row"><td>NET PAY</td><td style="text-align: right">{_money(payload['net_salary'])}</td></tr>
            </tbody>
        </table>
        <div class="footer">
            <p>This is a computer-generated document. No signature required.</p>
        </div>
    </body>
    </html>
    """
    except (KeyError, TypeError, ValueError, InvalidOperation) as e:
        logger.error(f"Salary slip rendering failed: {e}")
        raise DocumentRenderingError(f"Cannot render salary slip: {e}") from e

    return document.encode("utf-8")
