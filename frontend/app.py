from __future__ import annotations
from typing import List, Optional, Tuple

import requests
import dash_leaflet as dl
from dash import Dash, html, dcc, Output, Input, State, no_update
from dynaconf import Dynaconf
from loguru import logger

settings = Dynaconf(
    envvar_prefix="AREACALC",
    settings_files=["settings.toml", ".secrets.toml", "../settings.toml"],
    load_dotenv=True,
)

API_URL = settings.get("API_URL", "http://backend:8000")  # no docker-compose
MAP_CENTER = [float(settings.get("MAP_CENTER_LAT", 51.505)), float(settings.get("MAP_CENTER_LON", -0.09))]
MAP_ZOOM = int(settings.get("MAP_ZOOM", 13))

TILE_URL = "https://{s}.basemaps.cartocdn.com/light_all/{z}/{x}/{y}{r}.png"
TILE_ATTRIBUTION = (
    '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors '
    '&copy; <a href="https://carto.com/attributions">CARTO</a>'
)

INITIAL_POSITIONS = [[51.509, -0.08], [51.503, -0.06], [51.51, -0.047]]
ERROR_TIMEOUT_MS = 5000


def ring_from_geojson(geojson: Optional[dict]) -> Optional[List[Tuple[float, float]]]:
    """Último polígono desenhado no EditControl, como pares (lat, lon).

    Retorna None enquanto o editor ainda não emitiu nada, e lista vazia se
    o usuário apagou todos os polígonos.
    """
    if geojson is None:
        return None
    polygons = [
        f["geometry"] for f in geojson.get("features", [])
        if (f.get("geometry") or {}).get("type") == "Polygon"
    ]
    if not polygons:
        return []
    outer = polygons[-1]["coordinates"][0]
    pts = [(lat, lon) for lon, lat in outer]
    # GeoJSON já vem fechado; o backend fecha de novo se precisar
    if len(pts) > 1 and pts[0] == pts[-1]:
        pts = pts[:-1]
    return pts


def render_report(report: dict):
    rows = [
        ("Metros quadrados:", f"{report['square_meters']:,.2f} m²"),
        ("Hectares:", f"{report['hectares']:.2f} ha"),
        ("Quilômetros quadrados:", f"{report['square_kilometers']:.4f} km²"),
        ("Acres:", f"{report['acres']:.2f} acres"),
    ]
    return html.Table([html.Tr([html.Td(k), html.Td(v)]) for k, v in rows])


def render_error(message: str):
    return html.Span(message, className="error-text")


def critical_error_layout(message: str):
    return html.Div([
        html.H1("Erro na aplicação"),
        html.P(message),
        html.P("Verifique os logs para mais detalhes"),
    ], style={"color": "red", "padding": "20px", "fontFamily": "sans-serif"})


def check_backend(api_url: str) -> Optional[str]:
    """None se o backend está pronto, senão a mensagem de erro."""
    try:
        r = requests.get(f"{api_url}/healthz", timeout=10)
        j = r.json()
    except (requests.RequestException, ValueError) as e:
        logger.error(f"Backend indisponível: {e!r}")
        return f"Backend indisponível em {api_url}: {e}"
    if r.status_code != 200 or not j.get("ok"):
        missing = ", ".join(j.get("missing") or []) or "desconhecido"
        return f"Dependências faltando: {missing}"
    return None


def submit_ring(api_url: str, session_id: Optional[str], points: Optional[List[Tuple[float, float]]]):
    """Cria a sessão (primeira chamada) ou envia a edição. Retorna (status, json)."""
    if session_id is None:
        # sem pontos: o backend usa o polígono inicial; lista vazia é um erro legítimo
        body = {} if points is None else {"points": points}
        r = requests.post(f"{api_url}/sessions", json=body, timeout=30)
    else:
        r = requests.put(f"{api_url}/sessions/{session_id}/ring", json={"points": points or []}, timeout=30)
    try:
        return r.status_code, r.json()
    except ValueError:
        return r.status_code, {"error": "HTTPError", "detail": r.text}


def initial_bounds(positions):
    lats = [p[0] for p in positions]
    lons = [p[1] for p in positions]
    return [[min(lats), min(lons)], [max(lats), max(lons)]]


def map_layout():
    return html.Div([
        dcc.Store(id="session", storage_type="session"),
        dcc.Interval(id="error_timer", interval=ERROR_TIMEOUT_MS, n_intervals=0, disabled=True),
        dl.Map(
            id="map",
            center=MAP_CENTER,
            zoom=MAP_ZOOM,
            bounds=initial_bounds(INITIAL_POSITIONS),
            style={"width": "100%", "height": "100vh"},
            children=[
                dl.TileLayer(url=TILE_URL, attribution=TILE_ATTRIBUTION, maxZoom=19),
                dl.FeatureGroup([
                    dl.EditControl(
                        id="edit_control",
                        draw={"polyline": False, "rectangle": False, "circle": False,
                              "circlemarker": False, "marker": False, "polygon": True},
                    ),
                    dl.Polygon(
                        positions=INITIAL_POSITIONS,
                        pathOptions={"color": "#3388ff", "weight": 2, "opacity": 1, "fillOpacity": 0.3},
                    ),
                ]),
            ],
        ),
        html.Div([
            html.H4("Calculadora de Área de Polígono"),
            html.Div([
                html.P("Desenhe ou edite o polígono"),
                html.Div("-", id="area-result"),
            ], className="area-display"),
            html.Div(id="error-display", className="error-display"),
        ], className="info-panel", style={
            "position": "absolute", "top": "10px", "right": "10px", "zIndex": 1000,
            "background": "white", "padding": "10px", "borderRadius": "4px",
        }),
    ], style={"position": "relative"})


def create_app(api_url: str = API_URL) -> Dash:
    app = Dash(__name__, suppress_callback_exceptions=True)

    def serve_layout():
        problem = check_backend(api_url)
        if problem:
            return critical_error_layout(problem)
        return map_layout()

    app.layout = serve_layout

    @app.callback(
        Output("session", "data"),
        Output("area-result", "children"),
        Output("error-display", "children"),
        Output("error_timer", "disabled"),
        Output("error_timer", "n_intervals"),
        Input("edit_control", "geojson"),
        State("session", "data"),
    )
    def update_area(geojson, session_id):
        points = ring_from_geojson(geojson)
        if points is None and session_id is not None:
            # página recarregada: o mapa volta ao polígono inicial, a sessão também
            points = [tuple(p) for p in INITIAL_POSITIONS]
        try:
            status, j = submit_ring(api_url, session_id, points)
            if status == 404 and session_id is not None:
                # sessão perdida (backend reiniciado): recomeça
                status, j = submit_ring(api_url, None, points)
        except requests.RequestException as e:
            logger.error(f"Falha ao enviar polígono: {e!r}")
            return no_update, render_error("Área inválida"), render_error(f"Erro de rede: {e}"), False, 0

        if status in (200, 201):
            return j["session_id"], render_report(j["report"]), "", True, 0

        logger.warning(f"Cálculo falhou ({status}): {j}")
        return (
            no_update,
            render_error("Área inválida"),
            render_error(f"Erro de cálculo: {j.get('detail')}"),
            False,
            0,
        )

    @app.callback(
        Output("error-display", "children", allow_duplicate=True),
        Output("error_timer", "disabled", allow_duplicate=True),
        Input("error_timer", "n_intervals"),
        prevent_initial_call=True,
    )
    def clear_error(n):
        if not n:
            return no_update, no_update
        return "", True

    return app


app = create_app()
server = app.server

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8050, debug=True)
