from __future__ import annotations

from html import escape

from inverter_agent.config import Settings
from inverter_agent.services.formatter import DisplayRecord


def _rows(pairs: list[tuple[str, str, str]]) -> str:
    return "\n".join(
        f"<tr><th>{escape(label)}</th><td>{escape(value)}</td><td class=\"unit\">{escape(unit)}</td></tr>"
        for label, value, unit in pairs
    )


def _items(values: list[str], empty: str) -> str:
    if not values:
        return f'<li class="muted">{escape(empty)}</li>'
    return "\n".join(f"<li>{escape(value)}</li>" for value in values)


def render_status_page(record: DisplayRecord, settings: Settings) -> str:
    banner = ""
    if not record.valid:
        banner = '<p class="banner">Waiting for valid data from the inverter&hellip;</p>'
    battery = _rows(
        [
            ("Voltage", record.bat_voltage, "V"),
            ("Current", record.bat_current, "A"),
            ("Power", record.bat_power, "W"),
            ("Charge", record.bat_charge, "%"),
        ]
    )
    mains = _rows(
        [
            ("Input voltage", record.in_voltage, "V"),
            ("Input current", record.in_current, "A"),
            ("Input frequency", record.in_freq, "Hz"),
            ("Input power", record.in_power, "W"),
            ("Output voltage", record.out_voltage, "V"),
            ("Output current", record.out_current, "A"),
            ("Output frequency", record.out_freq, "Hz"),
            ("Output power", record.out_power, "W"),
            ("Input minus output", record.in_minus_out, "W"),
        ]
    )
    title = escape(settings.service_name)
    return f"""
        <html>
        <head>
            <title>{title} · Inverter status</title>
            <meta http-equiv="refresh" content="{settings.web.page_refresh_seconds}" />
            <style>
                body {{ font-family: Arial, sans-serif; background: #f5f5f5; margin: 0; padding: 0; }}
                header {{ background: #0f766e; color: white; padding: 1.5rem; }}
                main {{ padding: 1.5rem; display: grid; gap: 1.5rem; grid-template-columns: repeat(auto-fit, minmax(18rem, 1fr)); }}
                section {{ background: white; border-radius: 1rem; padding: 1.5rem; box-shadow: 0 12px 20px -12px rgba(15, 118, 110, 0.4); }}
                h1 {{ margin: 0; font-size: 1.8rem; }}
                h2 {{ margin-top: 0; }}
                th {{ text-align: left; color: #334155; font-weight: normal; padding-right: 1rem; }}
                td {{ text-align: right; font-variant-numeric: tabular-nums; }}
                td.unit {{ text-align: left; color: #94a3b8; padding-left: 0.3rem; }}
                .muted {{ color: #94a3b8; font-size: 0.8rem; }}
                .banner {{ background: #fef3c7; color: #92400e; padding: 0.8rem 1.5rem; margin: 0; }}
                .errors li {{ color: #b91c1c; }}
            </style>
        </head>
        <body data-valid="{str(record.valid).lower()}">
            <header>
                <h1>Inverter status</h1>
                <p>Last update: {escape(record.date)}</p>
            </header>
            {banner}
            <main>
                <section>
                    <h2>Battery</h2>
                    <table>{battery}</table>
                </section>
                <section>
                    <h2>Mains</h2>
                    <table>{mains}</table>
                </section>
                <section>
                    <h2>LEDs</h2>
                    <ul>{_items(record.leds, "No LEDs on")}</ul>
                </section>
                <section class="errors">
                    <h2>Errors</h2>
                    <ul>{_items(record.errors, "No errors reported")}</ul>
                </section>
            </main>
        </body>
        </html>
    """
