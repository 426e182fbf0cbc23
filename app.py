from __future__ import annotations

import json

import pandas as pd
import streamlit as st

from box_registry import BoxRegistry
from db import get_conn, read_table, run_migrations
from errors import BoxPlanError
from field_specs import field_guide_df, table_column_config
from insurance_engine import tier_available
from manual_allocation import apply_manual_allocation
from models import BoxLine
from planning_engine import (
    balance_frame,
    box_summary_frame,
    import_parts,
    load_catalog,
    line_frame,
    load_estimator,
    plan_shipment,
    selection_from_frame,
    shipment_totals,
)
from rate_engine import PRIORITIES, EstimateTracker, estimate_request_for
from seed import ensure_templates, seed_if_empty
from settings import WEIGHT_CEILING_G, configure_logging

st.set_page_config(page_title="Box Planner", layout="wide")
configure_logging()
run_migrations()
seed_if_empty()
ensure_templates()

conn = get_conn()


def registry() -> BoxRegistry | None:
    return st.session_state.get("registry")


def refresh_estimate(priority: str) -> None:
    reg = registry()
    if reg is None:
        return
    tracker: EstimateTracker = st.session_state.setdefault("estimates", EstimateTracker(load_estimator(conn)))
    # box edits and priority changes both show up as a different request
    if tracker.trigger_if_changed(estimate_request_for(reg, priority)) is not None:
        # Streamlit reruns the script per interaction, so resolve right away.
        tracker.flush(force=True)


def run_command(label: str, fn, *args) -> None:
    try:
        fn(*args)
    except BoxPlanError as exc:
        st.error(f"{label}: {exc}")
    else:
        st.rerun()


st.title("Shipment Box Planner")

with st.expander("Parts catalog", expanded=False):
    parts = read_table(conn, "parts", order_by="code")
    st.dataframe(parts, width="stretch", hide_index=True)
    upload = st.file_uploader("Upload parts csv", type=["csv"], key="parts_upload")
    if upload is not None:
        frame = st.data_editor(pd.read_csv(upload), num_rows="dynamic", width="stretch", column_config=table_column_config("parts_import"))
        if st.button("Import parts", key="import_parts"):
            try:
                st.success(f"Imported {import_parts(conn, frame)} parts")
            except BoxPlanError as exc:
                st.error(str(exc))
    st.caption("Column guide")
    st.dataframe(field_guide_df("parts_import"), width="stretch", hide_index=True)

catalog_df = read_table(conn, "parts", order_by="code")
if catalog_df.empty:
    st.warning("No parts found. Import a parts catalog first.")
    st.stop()

st.subheader("1. Select parts")
seed_frame = st.session_state.get("selection_frame", pd.DataFrame(columns=["item_code", "quantity"]))
selection_frame = st.data_editor(
    seed_frame,
    num_rows="dynamic",
    width="stretch",
    key="selection_editor",
    column_config={
        **table_column_config("selection"),
        "item_code": st.column_config.SelectboxColumn("item_code", options=catalog_df["code"].tolist(), required=True),
    },
)
c1, c2, c3 = st.columns(3)
ceiling_kg = c1.number_input("Weight ceiling per box (kg)", min_value=0.1, value=WEIGHT_CEILING_G / 1000, step=0.5)
priority = c2.selectbox("Priority", PRIORITIES, index=1)
mode = c3.radio("Allocation", ["AUTO", "MANUAL"], horizontal=True)

if mode == "AUTO" and st.button("Generate box allocation", type="primary"):
    try:
        selection = selection_from_frame(selection_frame.dropna(how="all"), load_catalog(conn))
        st.session_state["registry"] = plan_shipment(conn, selection, int(round(ceiling_kg * 1000)))
        st.session_state["selection_frame"] = selection_frame
    except BoxPlanError as exc:
        st.error(str(exc))

if mode == "MANUAL":
    st.caption("Paste the manual packing tool output: [{boxNumber, parts: [{partId, quantity}], dimensions, totalWeight}]")
    raw = st.text_area("Manual allocation JSON", height=160)
    if st.button("Apply manual allocation") and raw.strip():
        try:
            selection = selection_from_frame(selection_frame.dropna(how="all"), load_catalog(conn))
            reg = registry() or plan_shipment(conn, selection, int(round(ceiling_kg * 1000)))
            apply_manual_allocation(reg, json.loads(raw))
            st.session_state["registry"] = reg
        except json.JSONDecodeError as exc:
            st.error(f"Invalid JSON: {exc}")
        except BoxPlanError as exc:
            st.error(str(exc))

reg = registry()
if reg is None:
    st.info("Generate an allocation to edit boxes.")
    st.stop()

st.subheader("2. Boxes")
for box_id in reg.pop_dropped_overrides():
    st.warning(f"Insurance override on {box_id} no longer covers the box value; using the recommended tier")
if st.button("Add box"):
    run_command("Add box", reg.add_box)

for number, box in enumerate(reg.boxes, start=1):
    with st.container(border=True):
        head, dup, rem = st.columns([6, 1, 1])
        ins = box.insurance
        head.markdown(
            f"**Box {number}** `{box.box_id}` | {box.weight_g / 1000:.2f} kg | {box.value:,.2f} | "
            f"{ins.tier_type if ins else '-'} premium {ins.premium if ins else 0:,.2f}"
        )
        if dup.button("Duplicate", key=f"dup_{box.box_id}"):
            run_command("Duplicate box", reg.duplicate_box, box.box_id)
        if rem.button("Remove", key=f"rem_{box.box_id}", disabled=len(reg) <= 1):
            run_command("Remove box", reg.remove_box, box.box_id)

        d1, d2, d3, d4 = st.columns(4)
        length = d1.number_input("Length (cm)", value=float(box.dimensions.length), key=f"l_{box.box_id}")
        breadth = d2.number_input("Breadth (cm)", value=float(box.dimensions.breadth), key=f"b_{box.box_id}")
        height = d3.number_input("Height (cm)", value=float(box.dimensions.height), key=f"h_{box.box_id}")
        if d4.button("Resize", key=f"dims_{box.box_id}"):
            run_command("Resize", reg.update_dimensions, box.box_id, {"length": length, "breadth": breadth, "height": height})

        options = ["AUTO"] + [t.tier_type for t in reg.tiers if tier_available(t, box.value)]
        current = box.tier_override or "AUTO"
        choice = st.selectbox("Insurance", options, index=options.index(current) if current in options else 0, key=f"tier_{box.box_id}_{current}")
        if choice != current:
            if choice == "AUTO":
                run_command("Insurance", reg.clear_insurance_tier, box.box_id)
            else:
                run_command("Insurance", reg.set_insurance_tier, box.box_id, choice)

        others = [b.box_id for b in reg.boxes if b.box_id != box.box_id]
        if box.lines and others:
            m1, m2, m3, m4 = st.columns(4)
            code = m1.selectbox("Part", [line.item_code for line in box.lines], key=f"mv_code_{box.box_id}")
            qty = m2.number_input("Qty", min_value=1, value=1, step=1, key=f"mv_qty_{box.box_id}")
            dest = m3.selectbox("Move to", others, key=f"mv_dest_{box.box_id}")
            if m4.button("Move", key=f"mv_{box.box_id}"):
                run_command("Move", reg.reassign_line, dest, BoxLine(code, int(qty)), box.box_id)

st.subheader("3. Review")
refresh_estimate(priority)

totals = shipment_totals(reg)
k1, k2, k3, k4 = st.columns(4)
k1.metric("Boxes", totals["box_count"])
k2.metric("Weight (kg)", totals["total_weight_kg"])
k3.metric("Value", f"{totals['total_value']:,.2f}")
k4.metric("Insurance incl. GST", f"{totals['total_insurance']:,.2f}")

tracker = st.session_state.get("estimates")
latest = tracker.latest if tracker else None
if latest is None or latest.stale:
    st.warning("Shipping cost estimate unavailable")
else:
    st.success(f"Estimated shipping cost: {latest.amount:,.2f}")

st.dataframe(box_summary_frame(reg), width="stretch", hide_index=True)
st.dataframe(line_frame(reg), width="stretch", hide_index=True)
balance = balance_frame(reg)
if not totals["balanced"]:
    st.warning("Allocated quantities differ from the selection")
st.dataframe(balance, width="stretch", hide_index=True)

st.download_button(
    "Download submission payload",
    data=json.dumps({"boxes": reg.submission_payload(), "priority": priority}, indent=2),
    file_name="shipment_boxes.json",
    mime="application/json",
)
