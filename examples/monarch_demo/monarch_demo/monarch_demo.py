"""Example Reflex app rendering schema-driven grids.

Two pages:
  1. ``/`` -- the customer list screen (``CUST_LIST``) with keyword group,
     status select, join-date range and a manager popup picker backed by
     the ``USER_POPUP`` screen.
  2. ``/grid/[screen_id]`` -- any screen id, resolved at load time from
     the route, so new screens need only a schema file.

The ERP endpoints are served by ``mock_backend`` from the Reflex backend
itself; point ``MONARCH_API_BASE_URL`` elsewhere to use a real server.
"""

import json

import reflex as rx

from monarch_demo.mock_backend import mock_api
from monarch_grid import DynamicGridMixin, dynamic_grid

DEFAULT_SCREEN: str = "CUST_LIST"

DEMO_USER: dict[str, object] = {
    "M_USITE_NO": 1,
    "M_USER_NO": 1,
    "USER_NAME": "Kim Minji",
    "USER_CODE": "U01",
}


class CustomerGridState(DynamicGridMixin, rx.State):
    """Grid state for the customer list page."""

    def load_customers(self):
        return type(self).load_dg_screen(DEFAULT_SCREEN)

    def sign_in_demo_user(self):
        """Write the session user the grid scopes its requests with."""
        self.dg_user_json = json.dumps(DEMO_USER)
        return type(self).load_dg_screen(DEFAULT_SCREEN)

    def sign_out(self):
        self.dg_user_json = ""
        return type(self).load_dg_screen(DEFAULT_SCREEN)


class ScreenGridState(DynamicGridMixin, rx.State):
    """Grid state for the ``/grid/[screen_id]`` route."""

    def load_route_screen(self):
        screen_id = self.router.page.params.get("screen_id") or DEFAULT_SCREEN
        return type(self).load_dg_screen(screen_id)


# ---------------------------------------------------------------------------
# UI components
# ---------------------------------------------------------------------------

def _status_box(*children: rx.Component) -> rx.Component:
    """Styled status box below a grid."""
    return rx.box(
        *children,
        margin_top="1em",
        padding="1em",
        border_radius="8px",
        background="var(--gray-a3)",
    )


def _session_bar() -> rx.Component:
    return rx.hstack(
        rx.cond(
            CustomerGridState.dg_user_json != "",
            rx.badge("Signed in as Kim Minji", color_scheme="green"),
            rx.badge("Anonymous session", color_scheme="gray"),
        ),
        rx.button("Sign in", size="1", variant="soft", on_click=CustomerGridState.sign_in_demo_user),
        rx.button("Sign out", size="1", variant="ghost", on_click=CustomerGridState.sign_out),
        rx.spacer(),
        rx.link("Open as route", href=f"/grid/{DEFAULT_SCREEN}", size="2"),
        align="center",
        width="100%",
        margin_bottom="1em",
    )


def index() -> rx.Component:
    """Customer list page."""
    return rx.box(
        rx.heading("Schema-driven grid -- Reflex Demo", size="6", margin_bottom="0.5em"),
        rx.text(
            "Every filter, column and button below comes from the CUST_LIST "
            "schema served by the mock backend. Edit a filter and the results "
            "refresh after a short pause.",
            margin_bottom="1em",
            color="var(--gray-11)",
        ),
        _session_bar(),
        dynamic_grid(CustomerGridState),
        _status_box(
            rx.text(CustomerGridState.dg_selected_info, white_space="pre-wrap"),
        ),
        padding="2em",
        max_width="1400px",
        margin="0 auto",
    )


def screen_page() -> rx.Component:
    """Generic page for any screen id in the route."""
    return rx.box(
        rx.link("Back", href="/", size="2"),
        rx.box(dynamic_grid(ScreenGridState), margin_top="1em"),
        _status_box(
            rx.text(ScreenGridState.dg_selected_info, white_space="pre-wrap"),
        ),
        padding="2em",
        max_width="1400px",
        margin="0 auto",
    )


app = rx.App(api_transformer=mock_api)
app.add_page(index, on_load=CustomerGridState.load_customers)
app.add_page(screen_page, route="/grid/[screen_id]", on_load=ScreenGridState.load_route_screen)
