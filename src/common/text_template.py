def render_template(text: str, **values: str) -> str:
    rendered = text
    for name, value in values.items():
        rendered = rendered.replace("{" + name + "}", value, 1)
    return rendered
