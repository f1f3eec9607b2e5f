"""Bills for completed appointments and the daily income rollup."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from flask import current_app
from sqlalchemy import func

from .errors import BillingStateError
from .extensions import db
from .models import Appointment, Bill, DailyIncome, Employee, to_rupees, utc_now

BILL_PREFIX = "DS"


@dataclass(frozen=True)
class BillTotals:
    subtotal_paise: int
    discount_amount_paise: int
    tax_amount_paise: int
    total_amount_paise: int


def next_bill_number(billing_day: date) -> str:
    """Return ``DS<YYYYMMDD><NNN>``, the next sequence number for the day."""
    prefix = f"{BILL_PREFIX}{billing_day.strftime('%Y%m%d')}"
    last = (
        Bill.query.filter(Bill.bill_number.like(f"{prefix}%"))
        .order_by(Bill.bill_number.desc())
        .first()
    )
    sequence = int(last.bill_number[-3:]) + 1 if last else 1
    return f"{prefix}{sequence:03d}"


def collected_amount(paid_paise: int, total_paise: int) -> int:
    """Money kept against a bill; change handed back is not revenue."""
    return max(min(paid_paise, total_paise), 0)


def payment_status_for(paid_paise: int, total_paise: int) -> str:
    if paid_paise >= total_paise:
        return "paid"
    if paid_paise > 0:
        return "partial"
    return "pending"


def compute_totals(
    appointment: Appointment,
    discount_type: str = "none",
    discount_amount_paise: int = 0,
    discount_percentage: float = 0.0,
    tax_percentage: float = 0.0,
) -> BillTotals:
    """Price a bill from the appointment's line items.

    The booking discount is counted once; an extra discount given at the
    counter is a percentage of the already discounted amount, or a flat
    amount. Tax applies after all discounts.
    """
    subtotal = appointment.subtotal_paise
    discount = appointment.discount_amount_paise or 0

    if discount_type != "none":
        if discount_percentage:
            discount += round((subtotal - discount) * discount_percentage / 100)
        else:
            discount += discount_amount_paise
    discount = min(discount, subtotal)

    taxable = subtotal - discount
    tax = round(taxable * tax_percentage / 100) if tax_percentage else 0
    return BillTotals(subtotal, discount, tax, max(taxable + tax, 0))


def create_bill(appointment: Appointment, data: dict[str, object]) -> Bill:
    if appointment.status != "completed":
        raise BillingStateError("Can only bill completed appointments")
    if appointment.is_billed:
        raise BillingStateError("Appointment already billed")

    totals = compute_totals(
        appointment,
        discount_type=data["discount_type"],
        discount_amount_paise=data["discount_amount_paise"],
        discount_percentage=data["discount_percentage"],
        tax_percentage=data["tax_percentage"],
    )
    paid = data["paid_amount_paise"]
    now = utc_now()

    if data["discount_type"] != "none":
        discount_type = data["discount_type"]
    else:
        discount_type = appointment.discount_type

    bill = Bill(
        bill_number=next_bill_number(now.date()),
        appointment_id=appointment.appointment_id,
        customer_id=appointment.customer_id,
        customer_name=appointment.customer_name,
        customer_phone=appointment.customer_phone,
        employee_id=appointment.employee_id,
        line_items=[line.to_dict() for line in appointment.services],
        subtotal_paise=totals.subtotal_paise,
        discount_type=discount_type,
        discount_amount_paise=totals.discount_amount_paise,
        discount_percentage=data["discount_percentage"],
        discount_reason=data["discount_reason"] or appointment.discount_reason,
        tax_percentage=data["tax_percentage"],
        tax_amount_paise=totals.tax_amount_paise,
        total_amount_paise=totals.total_amount_paise,
        payment_method=data["payment_method"],
        payment_status=payment_status_for(paid, totals.total_amount_paise),
        paid_amount_paise=paid,
        change_given_paise=max(paid - totals.total_amount_paise, 0),
        notes=data["notes"],
        billing_date=now,
    )
    first_bill_today = not _customer_billed_on(appointment.customer_id, now.date())

    db.session.add(bill)
    appointment.is_billed = True
    record_daily_income(bill, appointment, new_customer=first_bill_today)
    db.session.commit()

    current_app.logger.info(
        "Created bill %s for appointment %s (total %s paise, %s)",
        bill.bill_number,
        appointment.appointment_id,
        bill.total_amount_paise,
        bill.payment_status,
    )
    return bill


def _customer_billed_on(customer_id: int, day: date) -> bool:
    start = datetime.combine(day, datetime.min.time())
    end = datetime.combine(day, datetime.max.time())
    return (
        Bill.query.filter(
            Bill.customer_id == customer_id,
            Bill.billing_date >= start,
            Bill.billing_date <= end,
        ).first()
        is not None
    )


def _income_row(day: date) -> DailyIncome:
    income = DailyIncome.query.filter_by(date=day).first()
    if income is None:
        income = DailyIncome(
            date=day,
            total_revenue_paise=0,
            total_bills=0,
            total_customers=0,
            payment_breakdown={},
            service_breakdown=[],
            employee_performance=[],
            expenses=[],
            total_expenses_paise=0,
        )
        db.session.add(income)
    return income


def record_daily_income(bill: Bill, appointment: Appointment, new_customer: bool = True) -> DailyIncome:
    """Fold a new bill into its day's rollup. JSON columns are reassigned, not mutated."""
    income = _income_row(bill.billing_date.date())
    total = bill.total_amount_paise
    collected = collected_amount(bill.paid_amount_paise, total)

    income.total_revenue_paise = (income.total_revenue_paise or 0) + collected
    income.total_bills = (income.total_bills or 0) + 1
    if new_customer:
        income.total_customers = (income.total_customers or 0) + 1

    payments = dict(income.payment_breakdown or {})
    payments[bill.payment_method] = payments.get(bill.payment_method, 0) + collected
    income.payment_breakdown = payments

    services = [dict(row) for row in income.service_breakdown or []]
    for line in appointment.services:
        row = next((r for r in services if r["service_name"] == line.service_name), None)
        if row is None:
            services.append({"service_name": line.service_name, "count": 1, "revenue_paise": line.price_paise})
        else:
            row["count"] += 1
            row["revenue_paise"] += line.price_paise
    income.service_breakdown = services

    if appointment.employee_id is not None:
        employee = db.session.get(Employee, appointment.employee_id)
        commission_rate = employee.commission_percentage if employee else 0.0
        commission = round(total * commission_rate / 100)
        performance = [dict(row) for row in income.employee_performance or []]
        row = next((r for r in performance if r["employee_id"] == appointment.employee_id), None)
        if row is None:
            performance.append(
                {
                    "employee_id": appointment.employee_id,
                    "appointments_completed": 1,
                    "revenue_generated_paise": total,
                    "commission_paise": commission,
                }
            )
        else:
            row["appointments_completed"] += 1
            row["revenue_generated_paise"] += total
            row["commission_paise"] += commission
        income.employee_performance = performance

    return income


def update_payment(bill: Bill, data: dict[str, object]) -> Bill:
    old_paid = bill.paid_amount_paise or 0
    paid = data["paid_amount_paise"]

    bill.paid_amount_paise = paid
    bill.change_given_paise = max(paid - bill.total_amount_paise, 0)
    bill.payment_status = payment_status_for(paid, bill.total_amount_paise)
    if data.get("payment_method"):
        bill.payment_method = data["payment_method"]
    if data.get("notes"):
        bill.notes = data["notes"]

    difference = collected_amount(paid, bill.total_amount_paise) - collected_amount(old_paid, bill.total_amount_paise)
    if difference:
        income = DailyIncome.query.filter_by(date=bill.billing_date.date()).first()
        if income is not None:
            income.total_revenue_paise = (income.total_revenue_paise or 0) + difference
            payments = dict(income.payment_breakdown or {})
            payments[bill.payment_method] = payments.get(bill.payment_method, 0) + difference
            income.payment_breakdown = payments

    db.session.commit()
    current_app.logger.info("Updated payment on bill %s: %s -> %s paise", bill.bill_number, old_paid, paid)
    return bill


def billing_overview(start: datetime, end: datetime) -> dict[str, object]:
    in_range = (Bill.billing_date >= start, Bill.billing_date <= end)

    total_revenue, total_bills = (
        db.session.query(func.coalesce(func.sum(Bill.total_amount_paise), 0), func.count(Bill.bill_id))
        .filter(*in_range, Bill.payment_status == "paid")
        .one()
    )

    payment_breakdown = [
        {"method": method, "count": count, "total_amount_paise": int(amount or 0)}
        for method, count, amount in db.session.query(
            Bill.payment_method, func.count(Bill.bill_id), func.sum(Bill.total_amount_paise)
        )
        .filter(*in_range)
        .group_by(Bill.payment_method)
        .all()
    ]

    daily: dict[str, dict[str, int]] = {}
    service_revenue: dict[str, dict[str, int]] = {}
    for bill in Bill.query.filter(*in_range, Bill.payment_status == "paid").order_by(Bill.billing_date).all():
        day = daily.setdefault(bill.billing_date.date().isoformat(), {"revenue_paise": 0, "bills": 0})
        day["revenue_paise"] += bill.total_amount_paise
        day["bills"] += 1
        for line in bill.line_items or []:
            row = service_revenue.setdefault(line["name"], {"count": 0, "revenue_paise": 0})
            row["count"] += 1
            row["revenue_paise"] += line["price_paise"]

    outstanding = [
        {"status": status, "count": count, "outstanding_paise": int(amount or 0)}
        for status, count, amount in db.session.query(
            Bill.payment_status,
            func.count(Bill.bill_id),
            func.sum(Bill.total_amount_paise - Bill.paid_amount_paise),
        )
        .filter(Bill.payment_status.in_(("pending", "partial")))
        .group_by(Bill.payment_status)
        .all()
    ]

    total_revenue = int(total_revenue or 0)
    return {
        "period": {"start_date": start.isoformat(), "end_date": end.isoformat()},
        "overview": {
            "total_revenue_paise": total_revenue,
            "total_revenue": to_rupees(total_revenue),
            "total_bills": total_bills,
            "avg_bill_amount_paise": total_revenue // total_bills if total_bills else 0,
        },
        "payment_breakdown": payment_breakdown,
        "daily_revenue": [{"date": day, **values} for day, values in daily.items()],
        "service_revenue": sorted(
            ({"service_name": name, **values} for name, values in service_revenue.items()),
            key=lambda row: row["revenue_paise"],
            reverse=True,
        ),
        "outstanding_payments": outstanding,
    }


def build_receipt(bill: Bill, salon_name: str) -> dict[str, object]:
    appointment = bill.appointment
    return {
        "salon": {"name": salon_name},
        "bill": {
            "bill_number": bill.bill_number,
            "date": bill.billing_date.strftime("%d/%m/%Y"),
            "time": bill.billing_date.strftime("%H:%M"),
        },
        "customer": {"name": bill.customer_name, "phone": bill.customer_phone},
        "appointment": {
            "date": appointment.appointment_date.isoformat() if appointment else None,
            "time": appointment.appointment_time if appointment else None,
            "employee": bill.employee.name if bill.employee else "Not assigned",
        },
        "services": bill.line_items or [],
        "billing": {
            "subtotal_paise": bill.subtotal_paise,
            "discount_amount_paise": bill.discount_amount_paise,
            "discount_reason": bill.discount_reason,
            "tax_amount_paise": bill.tax_amount_paise,
            "total_amount_paise": bill.total_amount_paise,
            "paid_amount_paise": bill.paid_amount_paise,
            "change_given_paise": bill.change_given_paise,
            "payment_method": bill.payment_method,
            "payment_status": bill.payment_status,
        },
        "notes": bill.notes,
    }
