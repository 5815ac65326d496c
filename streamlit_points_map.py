"""Streamlit entrypoint for the Point Lake results map."""
from __future__ import annotations

import logging

import streamlit as st

from dashboard.app import render_points_dashboard


def main() -> None:
    """Configure the Streamlit page and render the dashboard."""
    logging.basicConfig(level=logging.INFO)
    st.set_page_config(
        page_title="Point Lake results map",
        layout="wide",
    )
    render_points_dashboard()


if __name__ == "__main__":
    main()
