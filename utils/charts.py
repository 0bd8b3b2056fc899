"""
utils/charts.py
---------------
Shared chart helpers used across dashboard sections.
All functions return a Plotly figure object.

The forecast chart is built from the pipeline's chart payload
({labels, series: [{name, points}]}), so the observed and predicted
series always share one label axis.

Import example:
    from utils.charts import forecast_chart, apply_base_layout
"""

import pandas as pd
import plotly.graph_objects as go
from utils.constants import (
    ANNOTATION_COLOURS,
    AXIS_DEFAULTS,
    BASE_LAYOUT,
    CRIME_COLOURS,
    FALLBACK_COLOUR,
    LEGEND_TOP,
    SERIES_COLOURS,
)


# ── Layout helpers ────────────────────────────────────────────────

def apply_base_layout(fig: go.Figure, height: int = 420, **kwargs) -> go.Figure:
    """
    Apply the standard transparent background and drag/spike settings
    to a figure. Additional layout kwargs are passed through so callers
    can override individual properties.

    Usage:
        fig = apply_base_layout(fig, height=360, hovermode='closest')
    """
    layout = {**BASE_LAYOUT, "height": height, **kwargs}
    fig.update_layout(**layout)
    return fig


def style_xaxis(fig: go.Figure, show_labels: bool = True, **kwargs) -> go.Figure:
    props = {**AXIS_DEFAULTS, "showticklabels": show_labels, **kwargs}
    fig.update_xaxes(**props)
    return fig


def style_yaxis(fig: go.Figure, title: str = "", **kwargs) -> go.Figure:
    props = {**AXIS_DEFAULTS, "title": title, **kwargs}
    fig.update_yaxes(**props)
    return fig


# ── Annotation helpers ────────────────────────────────────────────

def add_vline_annotation(
    fig: go.Figure,
    x: str,
    label: str,
    color: str = "white",
    y_ref: float = 0.95,
) -> go.Figure:
    """
    Add a single annotated vertical dashed line, positioned in paper
    coordinates so it works whatever the y range.
    """
    fig.add_vline(
        x=x,
        line_dash="dash",
        line_color=color,
        opacity=0.6,
        line_width=1,
    )
    fig.add_annotation(
        x=x,
        y=y_ref,
        yref="paper",
        text=label,
        showarrow=False,
        font=dict(color=color, size=11),
        xanchor="left",
        xshift=6,
    )
    return fig


def add_turning_points(fig: go.Figure, annotations: list) -> go.Figure:
    """
    Mark peaks and troughs with coloured markers and a rounded label,
    peaks above the line and troughs below it.
    """
    for kind, colour in ANNOTATION_COLOURS.items():
        points = [a for a in annotations if a.kind == kind]
        if not points:
            continue
        fig.add_trace(go.Scatter(
            x=[a.month for a in points],
            y=[a.value for a in points],
            mode="markers+text",
            name=kind,
            marker=dict(color=colour, size=10),
            text=[f"{kind}: {round(a.value):,}" for a in points],
            textposition="top center" if kind == "Peak" else "bottom center",
            textfont=dict(color=colour, size=10),
            hovertemplate=f"{kind}<br>%{{x}}: %{{y:,.0f}}<extra></extra>",
        ))
    return fig


# ── Reusable chart builders ───────────────────────────────────────

def time_series_chart(
    traces: list[dict],
    height: int = 420,
    y_title: str = "",
    show_x_labels: bool = True,
) -> go.Figure:
    """
    Build a multi-trace time series figure.

    Each item in `traces` is a dict with keys:
        x, y       – data arrays (None gaps are left unconnected)
        name       – legend label
        color      – line colour
        width      – line width (default 2)
        dash       – line dash style (default 'solid')
        hover      – hovertemplate string (optional)

    Usage:
        fig = time_series_chart([
            {'x': months, 'y': counts, 'name': 'Shoplifting',
             'color': '#e74c3c', 'hover': '%{x}: %{y:,}<extra></extra>'},
        ], y_title='Monthly crimes')
    """
    fig = go.Figure()

    for t in traces:
        scatter_kwargs = dict(
            x=t["x"],
            y=t["y"],
            mode="lines+markers",
            name=t.get("name", ""),
            line=dict(
                color=t.get("color", FALLBACK_COLOUR),
                width=t.get("width", 2),
                dash=t.get("dash", "solid"),
            ),
            marker=dict(size=4),
            connectgaps=False,
            showlegend=t.get("name") is not None,
        )
        if "hover" in t:
            scatter_kwargs["hovertemplate"] = t["hover"]

        fig.add_trace(go.Scatter(**scatter_kwargs))

    fig = apply_base_layout(fig, height=height, legend=LEGEND_TOP)
    fig = style_xaxis(fig, show_labels=show_x_labels)
    fig = style_yaxis(fig, title=y_title)

    return fig


# ── Specific reusable figures ─────────────────────────────────────

def forecast_chart(chart_data: dict, annotations: list | None = None) -> go.Figure:
    """
    Observed vs predicted monthly crimes from a build_chart_data()
    payload, with a dashed line where the forecast starts and optional
    peak/trough markers on the predicted series.
    """
    labels = chart_data["labels"]
    traces = []
    for series in chart_data["series"]:
        predicted = series["name"] == "Predicted Crimes"
        traces.append({
            "x":     labels,
            "y":     series["points"],
            "name":  series["name"],
            "color": SERIES_COLOURS.get(series["name"], FALLBACK_COLOUR),
            "dash":  "dot" if predicted else "solid",
            "hover": "%{x}<br>%{y:,.0f} crimes<extra></extra>",
        })

    fig = time_series_chart(traces, height=460, y_title="Monthly crimes")

    predicted = next(
        (s["points"] for s in chart_data["series"] if s["name"] == "Predicted Crimes"),
        [],
    )
    first = next((i for i, v in enumerate(predicted) if v is not None), None)
    if first is not None:
        fig = add_vline_annotation(fig, labels[first], "Forecast")

    if annotations:
        fig = add_turning_points(fig, annotations)

    return fig


def crime_type_chart(frame: pd.DataFrame, types: list[str], show_total: bool = True) -> go.Figure:
    """
    Total plus one line per crime type from an aggregator.to_frame()
    DataFrame.
    """
    traces = []
    if show_total:
        traces.append({
            "x":     frame["month"],
            "y":     frame["total"],
            "name":  "Total",
            "color": SERIES_COLOURS["Total"],
            "width": 3,
            "hover": "Total<br>%{x}: %{y:,}<extra></extra>",
        })
    for crime_type in types:
        if crime_type not in frame.columns:
            continue
        traces.append({
            "x":     frame["month"],
            "y":     frame[crime_type],
            "name":  crime_type,
            "color": CRIME_COLOURS.get(crime_type, FALLBACK_COLOUR),
            "hover": f"{crime_type}<br>%{{x}}: %{{y:,}}<extra></extra>",
        })
    return time_series_chart(traces, height=480, y_title="Monthly crimes")


def loss_chart(history: dict) -> go.Figure:
    """Training loss per epoch."""
    loss = history.get("loss", [])
    fig = time_series_chart(
        [{
            "x":     list(range(1, len(loss) + 1)),
            "y":     loss,
            "name":  None,
            "color": SERIES_COLOURS["Predicted Crimes"],
            "hover": "Epoch %{x}<br>loss %{y:.5f}<extra></extra>",
        }],
        height=260,
        y_title="Training loss",
    )
    return style_xaxis(fig, title="Epoch")


def outcome_grid_chart(grid: pd.DataFrame, observed: pd.DataFrame | None = None) -> go.Figure:
    """
    Heatmap of predicted resolved-outcome probability over the lat/lon
    grid, with the fetched crimes overlaid as points.
    """
    pivot = grid.pivot_table(index="latitude", columns="longitude", values="probability")
    fig = go.Figure(go.Heatmap(
        x=pivot.columns,
        y=pivot.index,
        z=pivot.values,
        zmin=0,
        zmax=1,
        colorscale="RdYlGn",
        colorbar=dict(title="P(outcome)"),
        hovertemplate="lat %{y:.4f}<br>lng %{x:.4f}<br>P %{z:.2f}<extra></extra>",
    ))
    if observed is not None and not observed.empty:
        fig.add_trace(go.Scatter(
            x=observed["longitude"],
            y=observed["latitude"],
            mode="markers",
            name="Recorded crimes",
            marker=dict(
                color=observed["outcome"].map({1: "#2ecc71", 0: "#e74c3c"}),
                size=7,
                line=dict(color="white", width=1),
            ),
            hovertemplate="lat %{y:.4f}<br>lng %{x:.4f}<extra></extra>",
        ))
    fig = apply_base_layout(fig, height=480, hovermode="closest", legend=LEGEND_TOP)
    fig = style_xaxis(fig, title="Longitude")
    fig = style_yaxis(fig, title="Latitude")
    return fig
