"""
Chinook mart models.

Star schema with one fact at invoice-line grain. Surrogate keys are the
source's natural ids, so `AC/DC` (ArtistId 1) is `DimArtist.ArtistKey = 1`
and every invoice line of an AC/DC track carries `ArtistKey = 1`.
"""

from sqlalchemy import select

from warehouse.database.sql import concat, date_key
from warehouse.transformation.marts import DateDimension, MartContext, MartModel


def dim_artist(ctx: MartContext):
    artist = ctx.clean("artist")
    return select(
        artist.c.artist_id.label("ArtistKey"),
        artist.c.artist_name.label("ArtistName"),
    )


def dim_album(ctx: MartContext):
    album = ctx.clean("album")
    artist = ctx.mart("DimArtist")
    return select(
        album.c.album_id.label("AlbumKey"),
        album.c.album_title.label("AlbumTitle"),
        artist.c.ArtistKey,
    ).select_from(
        album.join(artist, artist.c.ArtistKey == album.c.artist_id)
    )


def dim_genre(ctx: MartContext):
    genre = ctx.clean("genre")
    return select(
        genre.c.genre_id.label("GenreKey"),
        genre.c.genre_name.label("GenreName"),
    )


def dim_track(ctx: MartContext):
    track = ctx.clean("track")
    media_type = ctx.clean("media_type")
    album = ctx.mart("DimAlbum")
    genre = ctx.mart("DimGenre")
    return select(
        track.c.track_id.label("TrackKey"),
        track.c.track_name.label("TrackName"),
        album.c.AlbumKey,
        genre.c.GenreKey,
        media_type.c.media_type_name.label("MediaTypeName"),
        track.c.composer.label("Composer"),
        track.c.milliseconds.label("Milliseconds"),
        track.c.bytes.label("Bytes"),
        track.c.unit_price.label("UnitPrice"),
    ).select_from(
        track
        .join(album, album.c.AlbumKey == track.c.album_id)
        .join(genre, genre.c.GenreKey == track.c.genre_id)
        .outerjoin(media_type, media_type.c.media_type_id == track.c.media_type_id)
    )


def dim_employee(ctx: MartContext):
    employee = ctx.clean("employee")
    return select(
        employee.c.employee_id.label("EmployeeKey"),
        employee.c.first_name.label("FirstName"),
        employee.c.last_name.label("LastName"),
        concat(employee.c.first_name, " ", employee.c.last_name).label("FullName"),
        employee.c.title.label("Title"),
        employee.c.reports_to.label("ManagerKey"),
        employee.c.hire_date.label("HireDate"),
        employee.c.city.label("City"),
        employee.c.country.label("Country"),
    )


def dim_customer(ctx: MartContext):
    customer = ctx.clean("customer")
    return select(
        customer.c.customer_id.label("CustomerKey"),
        customer.c.first_name.label("FirstName"),
        customer.c.last_name.label("LastName"),
        concat(customer.c.first_name, " ", customer.c.last_name).label("FullName"),
        customer.c.company.label("Company"),
        customer.c.city.label("City"),
        customer.c.state.label("State"),
        customer.c.country.label("Country"),
        customer.c.email.label("Email"),
        customer.c.support_rep_id.label("SupportRepKey"),
    )


def invoice_dates(ctx: MartContext):
    invoice = ctx.clean("invoice")
    return [select(date_key(invoice.c.invoice_date).label("DateKey")).distinct()]


def fact_invoice_line(ctx: MartContext):
    line = ctx.clean("invoice_line")
    invoice = ctx.clean("invoice")
    track = ctx.mart("DimTrack")
    album = ctx.mart("DimAlbum")
    artist = ctx.mart("DimArtist")
    genre = ctx.mart("DimGenre")
    customer = ctx.mart("DimCustomer")
    employee = ctx.mart("DimEmployee")
    dates = ctx.mart("DimDate")

    return select(
        line.c.invoice_line_id.label("InvoiceLineKey"),
        line.c.invoice_id.label("InvoiceId"),
        track.c.TrackKey,
        genre.c.GenreKey,
        customer.c.CustomerKey,
        dates.c.DateKey,
        employee.c.EmployeeKey,
        album.c.AlbumKey,
        artist.c.ArtistKey,
        line.c.quantity.label("Quantity"),
        line.c.unit_price.label("UnitPrice"),
        (line.c.unit_price * line.c.quantity).label("LineAmount"),
    ).select_from(
        line
        .join(invoice, invoice.c.invoice_id == line.c.invoice_id)
        .join(track, track.c.TrackKey == line.c.track_id)
        .join(album, album.c.AlbumKey == track.c.AlbumKey)
        .join(artist, artist.c.ArtistKey == album.c.ArtistKey)
        .join(genre, genre.c.GenreKey == track.c.GenreKey)
        .join(customer, customer.c.CustomerKey == invoice.c.customer_id)
        .join(employee, employee.c.EmployeeKey == customer.c.SupportRepKey)
        .join(dates, dates.c.DateKey == date_key(invoice.c.invoice_date))
    )


# Dimensions before the fact that joins them
MART_MODELS = [
    MartModel("DimArtist", dim_artist, "One row per artist"),
    MartModel("DimAlbum", dim_album, "One row per album, keyed to its artist"),
    MartModel("DimGenre", dim_genre, "One row per genre"),
    MartModel("DimTrack", dim_track, "One row per track with album, genre and media type"),
    MartModel("DimEmployee", dim_employee, "One row per employee"),
    MartModel("DimCustomer", dim_customer, "One row per customer with their support rep"),
    DateDimension(invoice_dates),
    MartModel("FactInvoiceLine", fact_invoice_line, "One row per invoice line"),
]
