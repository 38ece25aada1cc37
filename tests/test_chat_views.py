from core.draft import ListingDraftBuilder
from core.otp import OtpCooldown
from core.query import SearchQuery
from handlers.listing import _awaited_field, _render
from handlers.search import car_text, results_text
from keyboards.inline import main_menu_kb, otp_kb, results_kb, wizard_kb


def callbacks(markup):
    return [button.callback_data for row in markup.inline_keyboard for button in row]


def test_main_menu_depends_on_sign_in():
    assert "menu:login" in callbacks(main_menu_kb(signed_in=False))
    assert "menu:profile" in callbacks(main_menu_kb(signed_in=True))


def test_otp_keyboard_shows_countdown():
    cooldown = OtpCooldown(seconds=3)
    label = otp_kb(cooldown).inline_keyboard[0][0].text
    assert "(3 s)" in label
    for _ in range(3):
        cooldown.tick()
    assert otp_kb(cooldown).inline_keyboard[0][0].text == "🔁 Resend code"


def test_results_view(demo_listings):
    query = SearchQuery(text="toyota", sort_key="price", price_max=300)
    cars = [demo_listings[0]]
    text = results_text(cars, query)
    assert "1 cars" in text
    assert "Toyota Camry" in text
    data = callbacks(results_kb(cars, query))
    assert data[0] == "car:car-1"
    assert "srch:sort:rating" in data

    empty = results_text([], query)
    assert "No cars match your search" in empty


def test_car_detail_escapes_html(demo_listings):
    text = car_text(demo_listings[3])
    assert text.startswith("<b>Mercedes-Benz C-Class</b>")
    assert "Photos (" in text


def test_wizard_prompts_first_missing_field():
    builder = ListingDraftBuilder()
    assert _awaited_field(builder, None) == "make"
    builder.set_field("make", "Kia")
    assert _awaited_field(builder, None) == "model"
    assert _awaited_field(builder, "color") == "color"
    text = _render(builder)
    assert "Step 1 of 7" in text
    assert "Enter the model" in text


def test_wizard_keyboard_per_step():
    builder = ListingDraftBuilder()
    assert "lst:cycle:transmission" in callbacks(wizard_kb(builder))
    assert "lst:make:0" in callbacks(wizard_kb(builder, "make"))

    for name, value in {"make": "Kia", "model": "Rio", "year": "2020", "color": "Red"}.items():
        builder.set_field(name, value)
    builder.next()
    builder.add_image("/tmp/a.jpg")
    assert "lst:rmphoto" in callbacks(wizard_kb(builder))
    builder.next()
    assert "lst:instant" in callbacks(wizard_kb(builder))
