# relaymap/viz/export.py

from __future__ import annotations

import plotly.io as pio
from plotly.graph_objs import Figure


def figure_to_html(
        fig: Figure,
        include_plotlyjs: str = "cdn",
        div_id: str = "relaymap_figure",
) -> str:
    """
    Render a Plotly figure as a full HTML page.

    The div id is fixed so that re-rendering the same figure gives the same
    text (plotly otherwise generates a random one).
    """
    return pio.to_html(
        fig,
        include_plotlyjs=include_plotlyjs,
        full_html=True,
        div_id=div_id,
        config={"responsive": True},
    )
