import logging
from datetime import date
from typing import List, Optional

import altair as alt
import pandas as pd
import streamlit as st

from allocator.export import export_records, row_highlight
from allocator.metrics_summary import compute_summary
from allocator.params import STORE_PATH, ParamsError, normalize_params
from allocator.records import AllocationResult, ProcessedOutput
from allocator.storage import JsonFileWeekStore
from allocator.weekly import WeeklyRunError, run_week

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(name)s - %(message)s")
alt.data_transformers.disable_max_rows()

ROW_COLORS = {
    "negative": "#EDE9FE",
    "changed": "#CFFAFE",
    "drop": "#FFEDD5",
    "low": "#FEE2E2",
    "recalc": "#DBEAFE",
}
TABLE_COLUMNS = [
    "sku", "name", "year", "total_stock", "platform_fulfillment", "real_stock",
    "xhs_pending", "tb_pending", "yz_pending", "allocatable",
    "xhs_listing", "tb_listing", "yz_listing", "flags", "reasons",
]
STOCK_COLUMNS = ["total_stock", "platform_fulfillment", "real_stock", "xhs_pending", "tb_pending", "yz_pending"]


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin: 6px 0 10px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        .chip.danger {background: #fee2e2;} .chip.warn {background: #ffedd5;} .chip.info {background: #cffafe;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


def record_flags(record: AllocationResult) -> str:
    flags = []
    if record.needs_recalc or record.allocation_changed:
        flags.append("分配变动")
    if record.total_stock_drop_only:
        flags.append("总库存下降")
    if record.low_stock:
        flags.append("低库存")
    if record.missing_prev:
        flags.append("无上一周基准")
    return " / ".join(flags)


def records_frame(records: List[AllocationResult], show_stock: bool) -> pd.DataFrame:
    rows = []
    for r in records:
        row = {c: getattr(r, c, None) for c in TABLE_COLUMNS if c not in ("flags", "reasons")}
        row["flags"] = record_flags(r)
        row["reasons"] = "; ".join(r.reasons)
        if r.prev_snapshot is not None:
            prev = r.prev_snapshot
            row["prev_listing"] = f"{prev.xhs_listing}/{prev.tb_listing}/{prev.yz_listing}"
            row["prev_real_stock"] = prev.real_stock
        rows.append(row)
    df = pd.DataFrame(rows)
    if not show_stock:
        df = df.drop(columns=[c for c in STOCK_COLUMNS if c in df.columns])
    return df


def render_results_table(records: List[AllocationResult], show_stock: bool):
    if not records:
        st.info("暂无数据")
        return
    df = records_frame(records, show_stock)
    styles = [row_highlight(r) for r in records]

    def _style_row(row: pd.Series) -> List[str]:
        key = styles[row.name]
        color = ROW_COLORS.get(key) if key else None
        return [f"background-color: {color}" if color else "" for _ in row]

    st.dataframe(df.style.apply(_style_row, axis=1), hide_index=True, use_container_width=True)


def render_kpis(summary: dict):
    k = summary["kpis"]
    sums = summary["listing_sums"]
    chips = [
        ("", f"SKU 数：{k['total']}"),
        ("danger", f"低库存：{k['low_stock']}"),
        ("warn", f"需要重算：{k['needs_recalc']}"),
        ("info", f"分配变动：{k['allocation_changed']}"),
        ("danger", f"超卖：{k['oversold']}"),
        ("", f"allocatable 总计：{sums['allocatable']:g}（小红书 {sums['xhs']} / 淘宝 {sums['tb']} / 有赞 {sums['yz']}）"),
    ]
    html = "".join(f"<span class='chip {cls}'>{txt}</span>" for cls, txt in chips)
    st.markdown(f"<div class='chip-row'>{html}</div>", unsafe_allow_html=True)
    chart = summary["charts"].get("listings_by_platform")
    if chart:
        st.vega_lite_chart(chart, use_container_width=True)


def render_export_buttons(records: List[AllocationResult], week_id: str):
    if not records:
        return
    buttons = [
        ("all", "全部结果"),
        ("reallocation", "重新分配结果（隐藏库存/待发）"),
        ("reallocation_with_stock", "重新分配结果（含库存/待发）"),
    ]
    cols = st.columns(len(buttons) * 2)
    for i, (subset, label) in enumerate(buttons):
        for j, fmt in enumerate(["json", "xlsx"]):
            payload, filename, mime = export_records(records, fmt=fmt, subset=subset, week_id=week_id)
            cols[i * 2 + j].download_button(
                f"导出{label} {fmt.upper()}", data=payload, file_name=filename, mime=mime, key=f"dl-{subset}-{fmt}"
            )


def today_week_id() -> str:
    return date.today().strftime("%Y%m%d")


# ---------- UI setup ----------
st.set_page_config(page_title="Stock Allocator", layout="wide")
inject_base_styles()
st.title("Stock Allocator")
st.caption("导入 Excel 周报后，自动计算真实库存并进行库存分配；同时给出低库存提醒与上一周对比触发的“需要重算”标记。")

store = JsonFileWeekStore(STORE_PATH)
stored_weeks = store.list_keys()

with st.sidebar:
    st.markdown("### Navigate")
    page = st.radio("Navigate", ["本周处理", "历史数据"], index=0)

    st.markdown("---")
    st.markdown("### 参数")
    week_id = st.text_input("本周 weekId", value=st.session_state.get("week_id", today_week_id()), help="必填，例如 20250112")
    week_id_prev = st.selectbox("上一周 weekId（留空则默认 weekId - 1）", options=[""] + stored_weeks, index=0)
    year = st.text_input("年份", value="2025")

    with st.expander("Advanced settings", expanded=False):
        low_stock = st.number_input("低库存阈值", min_value=0, value=2, step=1)
        change_pct = st.number_input("变动阈值 (%)", min_value=0.0, value=20.0, step=5.0)
        st.subheader("平台配比（默认 70/20/10）")
        xhs = st.number_input("小红书 (%)", min_value=0, value=70, step=5)
        tb = st.number_input("淘宝 (%)", min_value=0, value=20, step=5)
        yz = st.number_input("有赞 (%)", min_value=0, value=10, step=5)
        strategy = st.radio("待发扣减", ["all", "none", "custom"], index=0, horizontal=True)
        custom_fields = None
        if strategy == "custom":
            custom_fields = st.multiselect("扣减平台", ["xhs", "tb", "yz"], default=["xhs", "tb", "yz"])

raw_params = {
    "week_id": week_id,
    "week_id_prev": week_id_prev,
    "year": year,
    "ratios": {"xhs": xhs, "tb": tb, "yz": yz},
    "pending_deduct": {"strategy": strategy, "custom_fields": custom_fields},
    "thresholds": {"low_stock_threshold": low_stock, "change_threshold_percent": change_pct},
}


def show_output(output: ProcessedOutput, baseline_missing: bool, prev_week_used: Optional[str]):
    if baseline_missing:
        st.info("缺少上一周 processed output，已默认用本周真实库存全部分配；本次结果会保存供下周对比。")
    if prev_week_used:
        st.caption(f"对比基准 weekId：{prev_week_used}")

    c1, c2, c3 = st.columns(3)
    show_other = c1.checkbox("展开其他年份", value=False)
    low_only = c2.checkbox("低库存预警", value=False)
    show_stock = c3.checkbox("显示库存/待发", value=True)

    pool = [r for r in output.records if r.low_stock] if low_only else output.records
    visible = [r for r in pool if show_other or r.year_group != "other"]
    summary = compute_summary(pool, include_other_years=show_other)
    render_kpis(summary)
    if summary["kpis"]["hidden_other_years"]:
        st.caption(f"已隐藏其他年份 {summary['kpis']['hidden_other_years']} 个 SKU")
    render_export_buttons(output.records, output.week_id)
    render_results_table(visible, show_stock)


if page == "本周处理":
    uploaded = st.file_uploader("上传 Excel 周报", type=["xlsx", "xls", "csv"])
    if st.button("处理", type="primary"):
        try:
            params = normalize_params(raw_params)
            if uploaded is None:
                raise ParamsError("请选择要上传的 Excel")
            run = run_week(uploaded.getvalue(), params, store, filename=uploaded.name)
            st.session_state["run"] = run
            st.session_state["week_id"] = params.week_id
        except ParamsError as exc:
            st.error(f"参数错误：{exc}")
        except WeeklyRunError as exc:
            st.error(f"处理 Excel 失败：{exc}")

    run = st.session_state.get("run")
    if run is not None:
        show_output(run.output, run.baseline_missing, run.prev_week_used)
else:
    st.subheader("历史数据")
    if not stored_weeks:
        st.info("暂无已保存周次")
        st.stop()
    selected = st.selectbox("已保存周次", stored_weeks, index=len(stored_weeks) - 1)
    b1, b2 = st.columns(2)
    if b1.button(f"删除周次 {selected}"):
        store.delete(selected)
        st.rerun()
    if b2.button("清空历史"):
        store.clear_all()
        st.session_state.pop("run", None)
        st.rerun()
    output = store.load(selected)
    if output is not None:
        show_output(output, baseline_missing=False, prev_week_used=None)
