"""UI helpers that render a :class:`~monarch_grid.state.DynamicGridMixin` state.

:func:`dynamic_grid` is the single entry point; the other helpers are
public so hosts can compose their own layout from the same pieces.
Everything here reads render-ready ``dg_*`` vars.
"""

from typing import Any

import reflex as rx

from monarch_grid.config import get_settings
from monarch_grid.state import PopupGridState

_SELECT_ALL: str = "__all__"


# ---------------------------------------------------------------------------
# Filter controls
# ---------------------------------------------------------------------------


def _text_control(state_cls: type, unit: Any) -> rx.Component:
    return rx.input(
        placeholder=unit["label"],
        value=state_cls.dg_input_values[unit["field"]],
        on_change=lambda value: state_cls.set_dg_plain_filter(unit["field"], value),
        width="100%",
    )


def _select_control(state_cls: type, unit: Any) -> rx.Component:
    return rx.select.root(
        rx.select.trigger(placeholder=unit["label"], width="100%"),
        rx.select.content(
            rx.select.item("All", value=_SELECT_ALL),
            rx.foreach(
                state_cls.dg_code_options[unit["code_group"]],
                lambda option: rx.select.item(option["label"], value=option["value"]),
            ),
        ),
        value=state_cls.dg_input_values[unit["field"]],
        on_change=lambda value: state_cls.set_dg_select_filter(unit["field"], value),
    )


def _date_input(value: Any, on_change: Any) -> rx.Component:
    return rx.input(type="date", value=value, on_change=on_change, width="100%")


def _date_control(state_cls: type, unit: Any) -> rx.Component:
    # A single date is a plain value sent as <FIELD>, not a range.
    return _date_input(
        state_cls.dg_input_values[unit["field"]],
        lambda value: state_cls.set_dg_plain_filter(unit["field"], value),
    )


def _date_between_control(state_cls: type, unit: Any) -> rx.Component:
    return rx.hstack(
        _date_input(
            state_cls.dg_date_from[unit["field"]],
            lambda value: state_cls.set_dg_date_start(unit["field"], value),
        ),
        rx.text("~", color="var(--gray-9)"),
        _date_input(
            state_cls.dg_date_to[unit["field"]],
            lambda value: state_cls.set_dg_date_end(unit["field"], value),
        ),
        spacing="1",
        align="center",
        width="100%",
    )


def _popup_control(state_cls: type, unit: Any, allow_popups: bool) -> rx.Component:
    display = state_cls.dg_popup_displays[unit["field"]]
    if not allow_popups:
        return rx.input(placeholder=unit["label"], value=display, read_only=True, width="100%")
    return rx.hstack(
        rx.input(
            placeholder=unit["label"],
            value=display,
            read_only=True,
            cursor="pointer",
            on_click=state_cls.open_dg_popup(unit["field"]),
            width="100%",
        ),
        rx.cond(
            display != "",
            rx.icon_button(
                rx.icon("x", size=14),
                type="button",
                variant="ghost",
                color_scheme="gray",
                on_click=state_cls.clear_dg_popup(unit["field"]),
            ),
        ),
        rx.icon_button(
            rx.icon("search", size=14),
            type="button",
            variant="soft",
            on_click=state_cls.open_dg_popup(unit["field"]),
        ),
        spacing="1",
        align="center",
        width="100%",
    )


def _group_control(state_cls: type, unit: Any) -> rx.Component:
    group = unit["group_name"]
    return rx.hstack(
        rx.select.root(
            rx.select.trigger(),
            rx.select.content(
                rx.foreach(
                    state_cls.dg_group_options[group],
                    lambda option: rx.select.item(option["label"], value=option["field"]),
                ),
            ),
            value=state_cls.dg_group_selections[group],
            on_change=lambda field: state_cls.select_dg_group_field(group, field),
        ),
        rx.input(
            placeholder=unit["label"],
            value=state_cls.dg_group_values[group],
            on_change=lambda value: state_cls.set_dg_group_value(group, value),
            width="100%",
        ),
        spacing="1",
        width="100%",
    )


def filter_unit(state_cls: type, unit: Any, *, allow_popups: bool = True) -> rx.Component:
    """Render one normalized filter unit (single item or field group)."""
    return rx.cond(
        unit["kind"] == "group",
        _group_control(state_cls, unit),
        rx.match(
            unit["type"],
            ("select", _select_control(state_cls, unit)),
            ("date", _date_control(state_cls, unit)),
            ("dateBetween", _date_between_control(state_cls, unit)),
            ("popup", _popup_control(state_cls, unit, allow_popups)),
            _text_control(state_cls, unit),
        ),
    )


def _button(state_cls: type, button: Any, **props: Any) -> rx.Component:
    return rx.button(
        button["label"],
        type="button",
        variant=rx.cond(button["action"] == "search", "solid", "soft"),
        on_click=state_cls.handle_dg_button_click(button["index"]),
        **props,
    )


def grid_filters(state_cls: type, *, allow_popups: bool = True) -> rx.Component:
    """Desktop filter panel: rows on a 12-unit grid plus the button bar.

    Pressing Enter in any input submits the form, which runs a search.
    """
    return rx.form(
        rx.vstack(
            rx.foreach(
                state_cls.dg_filter_rows,
                lambda row: rx.grid(
                    rx.foreach(
                        row,
                        lambda unit: rx.box(
                            filter_unit(state_cls, unit, allow_popups=allow_popups),
                            grid_column=unit["grid_column"],
                        ),
                    ),
                    columns="12",
                    spacing="2",
                    width="100%",
                ),
            ),
            rx.hstack(
                rx.foreach(state_cls.dg_buttons, lambda button: _button(state_cls, button)),
                justify="end",
                spacing="2",
                width="100%",
            ),
            spacing="2",
            width="100%",
        ),
        on_submit=state_cls.handle_dg_submit,
        reset_on_submit=False,
        padding="0.75em",
        border="1px solid var(--gray-a5)",
        border_radius="8px",
        margin_bottom="0.75em",
        width="100%",
    )


def mobile_filter_drawer(state_cls: type, *, allow_popups: bool = True) -> rx.Component:
    """Mobile filters: a button that opens a bottom drawer with stacked filters."""
    stacked = rx.form(
        rx.vstack(
            rx.foreach(
                state_cls.dg_filter_rows,
                lambda row: rx.foreach(
                    row,
                    lambda unit: rx.vstack(
                        rx.text(unit["label"], size="1", color="var(--gray-10)"),
                        filter_unit(state_cls, unit, allow_popups=allow_popups),
                        spacing="1",
                        width="100%",
                    ),
                ),
            ),
            rx.vstack(
                rx.foreach(
                    state_cls.dg_mobile_buttons,
                    lambda button: _button(state_cls, button, width="100%"),
                ),
                spacing="2",
                width="100%",
            ),
            spacing="3",
            width="100%",
        ),
        on_submit=state_cls.handle_dg_submit,
        reset_on_submit=False,
        width="100%",
    )
    return rx.drawer.root(
        rx.drawer.trigger(
            rx.button(rx.icon("sliders_horizontal", size=14), "Filters", variant="soft", width="100%"),
        ),
        rx.drawer.overlay(z_index="5"),
        rx.drawer.portal(
            rx.drawer.content(
                rx.box(stacked, padding="1em", overflow_y="auto", max_height="80vh", width="100%"),
                background_color="var(--color-panel-solid)",
                border_radius="12px 12px 0 0",
                width="100%",
                bottom="0",
            ),
        ),
        direction="bottom",
        open=state_cls.dg_drawer_open,
        on_open_change=state_cls.handle_dg_drawer_change,
    )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def _cell(row: Any, column: Any) -> rx.Component:
    value = row[column["field"]]
    return rx.cond(
        column["chip"] == "true",
        rx.cond(
            value != "",
            rx.badge(value, color_scheme=row[column["chip_key"]], variant="soft", radius="full"),
        ),
        rx.text(value, size="2"),
    )


def results_table(state_cls: type, on_row_click: Any) -> rx.Component:
    """Desktop results table keyed by the schema's ``keyName``."""
    return rx.table.root(
        rx.table.header(
            rx.table.row(
                rx.foreach(
                    state_cls.dg_columns,
                    lambda column: rx.table.column_header_cell(
                        column["label"], text_align=column["label_align"]
                    ),
                ),
            ),
        ),
        rx.table.body(
            rx.foreach(
                state_cls.dg_display_rows,
                lambda row, index: rx.table.row(
                    rx.foreach(
                        state_cls.dg_columns,
                        lambda column: rx.table.cell(_cell(row, column), text_align=column["align"]),
                    ),
                    key=row["__key__"],
                    on_click=on_row_click(state_cls.dg_rows[index]),
                    cursor="pointer",
                    _hover={"background": "var(--accent-a3)"},
                ),
            ),
        ),
        variant="surface",
        size="1",
        width="100%",
    )


def _card_field(row: Any, column: Any) -> rx.Component:
    return rx.hstack(
        rx.text(column["label"], size="1", color="var(--gray-10)"),
        rx.spacer(),
        _cell(row, column),
        width="100%",
        align="center",
    )


def mobile_cards(state_cls: type, on_row_click: Any) -> rx.Component:
    """Mobile results: one card per row, non-preview columns collapsed."""
    title = state_cls.dg_mobile_title
    return rx.vstack(
        rx.foreach(
            state_cls.dg_display_rows,
            lambda row, index: rx.card(
                rx.vstack(
                    rx.box(
                        rx.text(title["label"], size="1", color="var(--gray-10)"),
                        rx.heading(
                            rx.cond(row[title["field"]] != "", row[title["field"]], "-"),
                            size="3",
                        ),
                        rx.foreach(
                            state_cls.dg_mobile_preview_columns,
                            lambda column: _card_field(row, column),
                        ),
                        on_click=on_row_click(state_cls.dg_rows[index]),
                        cursor="pointer",
                        width="100%",
                    ),
                    rx.cond(
                        state_cls.dg_mobile_detail_columns.length() > 0,
                        rx.el.details(
                            rx.el.summary("More", style={"cursor": "pointer", "fontSize": "12px"}),
                            rx.vstack(
                                rx.foreach(
                                    state_cls.dg_mobile_detail_columns,
                                    lambda column: _card_field(row, column),
                                ),
                                spacing="1",
                                padding_top="0.5em",
                                width="100%",
                            ),
                            width="100%",
                        ),
                    ),
                    spacing="1",
                    width="100%",
                ),
                key=row["__key__"],
                width="100%",
            ),
        ),
        spacing="2",
        width="100%",
    )


def _loading_placeholder() -> rx.Component:
    return rx.vstack(
        *[rx.skeleton(rx.box(height="2em", width="100%"), loading=True) for _ in range(5)],
        spacing="2",
        width="100%",
    )


def _empty_placeholder() -> rx.Component:
    return rx.center(
        rx.vstack(
            rx.icon("inbox", size=28, color="var(--gray-8)"),
            rx.text("No data.", size="2", color="var(--gray-10)"),
            align="center",
        ),
        padding="2em",
        width="100%",
    )


def grid_results(state_cls: type, on_row_click: Any) -> rx.Component:
    return rx.cond(
        state_cls.dg_loading,
        _loading_placeholder(),
        rx.cond(
            state_cls.dg_display_rows.length() == 0,
            _empty_placeholder(),
            rx.fragment(
                rx.desktop_only(results_table(state_cls, on_row_click)),
                rx.mobile_and_tablet(mobile_cards(state_cls, on_row_click)),
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Paging, errors, scroll-to-top
# ---------------------------------------------------------------------------


def grid_pagination(state_cls: type) -> rx.Component:
    """Total count, page-size select and (when needed) page navigation."""
    page = state_cls.dg_page
    pages = state_cls.dg_total_pages

    def _nav(icon: str, target: Any, disabled: Any) -> rx.Component:
        return rx.icon_button(
            rx.icon(icon, size=14),
            size="1",
            variant="soft",
            type="button",
            disabled=disabled,
            on_click=state_cls.handle_dg_paginate(target),
        )

    navigation = rx.hstack(
        _nav("chevrons_left", 1, page <= 1),
        _nav("chevron_left", page - 1, page <= 1),
        rx.foreach(
            state_cls.dg_page_numbers,
            lambda number: rx.button(
                number.to(str),  # type: ignore[union-attr]
                size="1",
                type="button",
                variant=rx.cond(number == page, "solid", "soft"),
                on_click=state_cls.handle_dg_paginate(number),
            ),
        ),
        _nav("chevron_right", page + 1, page >= pages),
        _nav("chevrons_right", pages, page >= pages),
        spacing="1",
        align="center",
    )
    return rx.hstack(
        rx.text(
            "Total ",
            state_cls.dg_total_count.to(str),  # type: ignore[union-attr]
            " rows",
            size="2",
            color="var(--gray-10)",
        ),
        rx.spacer(),
        rx.cond(pages > 1, navigation),
        rx.select(
            state_cls.dg_page_size_options,
            value=state_cls.dg_page_size.to(str),  # type: ignore[union-attr]
            on_change=state_cls.handle_dg_page_size,
            size="1",
        ),
        align="center",
        spacing="3",
        padding_top="0.75em",
        width="100%",
    )


def grid_error(state_cls: type) -> rx.Component:
    """Dismissible inline error for a failed data request."""
    return rx.cond(
        state_cls.dg_error != "",
        rx.callout.root(
            rx.callout.icon(rx.icon("triangle_alert")),
            rx.callout.text(state_cls.dg_error),
            rx.icon_button(
                rx.icon("x", size=14),
                size="1",
                variant="ghost",
                on_click=state_cls.dismiss_dg_error,
                margin_left="auto",
            ),
            color_scheme="red",
            size="1",
            margin_bottom="0.5em",
        ),
    )


def grid_warnings(state_cls: type) -> rx.Component:
    """Non-blocking schema diagnostics."""
    return rx.cond(
        state_cls.dg_warnings.length() > 0,
        rx.callout.root(
            rx.callout.icon(rx.icon("info")),
            rx.callout.text(
                "Screen configuration has issues: ",
                state_cls.dg_warnings.join("; "),  # type: ignore[attr-defined]
            ),
            color_scheme="amber",
            variant="surface",
            size="1",
            margin_bottom="0.5em",
        ),
    )


def scroll_top_button(element_id: str, threshold: int | None = None) -> rx.Component:
    """Floating button shown once the page scrolls past *threshold* pixels."""
    if threshold is None:
        threshold = get_settings().scroll_top_threshold
    script = (
        "(() => {"
        f"const el = document.getElementById('{element_id}');"
        "if (!el) return;"
        f"const toggle = () => {{ el.style.display = window.scrollY > {threshold} ? 'flex' : 'none'; }};"
        "window.addEventListener('scroll', toggle, {passive: true});"
        "toggle();"
        "})();"
    )
    return rx.mobile_and_tablet(
        rx.icon_button(
            rx.icon("arrow_up", size=18),
            id=element_id,
            on_click=rx.call_script("window.scrollTo({top: 0, behavior: 'smooth'})"),
            position="fixed",
            bottom="1.5em",
            right="1.5em",
            radius="full",
            size="3",
            display="none",
            z_index="10",
        ),
        rx.script(script),
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def popup_dialog() -> rx.Component:
    """Dialog hosting the popup picker grid (no nested popups)."""
    state = PopupGridState
    return rx.dialog.root(
        rx.dialog.content(
            rx.dialog.title(state.dg_popup_label),
            dynamic_grid(
                state,
                on_row_click=state.pick_dg_popup_row,
                allow_popups=False,
                show_title=False,
            ),
            rx.flex(
                rx.dialog.close(rx.button("Close", variant="soft", color_scheme="gray")),
                justify="end",
                padding_top="0.75em",
            ),
            max_width="960px",
        ),
        open=state.dg_popup_open,
        on_open_change=state.handle_dg_popup_open_change,
    )


def dynamic_grid(
    state_cls: type,
    *,
    on_row_click: Any = None,
    allow_popups: bool = True,
    show_title: bool = True,
    width: str = "100%",
) -> rx.Component:
    """Return the complete dynamic grid bound to a :class:`DynamicGridMixin` state.

    Args:
        state_cls: The ``rx.State`` subclass that also inherits from
            :class:`~monarch_grid.state.DynamicGridMixin`.
        on_row_click: Event handler receiving the clicked raw row.  If
            ``None``, uses the mixin's ``handle_dg_row_click``.
        allow_popups: Render popup filters as picker triggers (and include
            the picker dialog).  Disabled inside the picker itself.
        show_title: Show the schema title as a heading.
        width: CSS width of the container.

    Returns:
        A Reflex component.  A schema that could not be fetched renders
        a blocking error instead of the grid.
    """
    if on_row_click is None:
        on_row_click = state_cls.handle_dg_row_click

    body = rx.fragment(
        rx.desktop_only(grid_filters(state_cls, allow_popups=allow_popups)),
        rx.mobile_and_tablet(
            rx.box(mobile_filter_drawer(state_cls, allow_popups=allow_popups), margin_bottom="0.75em"),
        ),
        grid_warnings(state_cls),
        grid_error(state_cls),
        grid_results(state_cls, on_row_click),
        grid_pagination(state_cls),
    )
    blocking_error = rx.callout.root(
        rx.callout.icon(rx.icon("circle_x")),
        rx.callout.text(state_cls.dg_error),
        color_scheme="red",
        width="100%",
    )

    children: list[rx.Component] = []
    if show_title:
        children.append(rx.heading(state_cls.dg_title, size="5", margin_bottom="0.5em"))
    children.append(rx.cond(state_cls.dg_status == "failed", blocking_error, body))
    if allow_popups:
        children.append(popup_dialog())
        children.append(scroll_top_button(f"dg-scroll-top-{state_cls.__name__}"))
    return rx.box(*children, on_unmount=state_cls.handle_dg_unmount, width=width)
