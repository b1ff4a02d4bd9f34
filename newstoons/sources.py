# sources.py
"""Mainstream news outlets per city, most authoritative first.

Domains are canonical: lowercase, no ``www.`` prefix. A source's authority
rank is its 1-based position in the city's list.
"""
from typing import Dict, List

from pydantic import BaseModel, ConfigDict


class MainstreamSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    sourceName: str
    domain: str


class CityNewsConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    countryCode: str
    languageCode: str
    sources: List[MainstreamSource]


def _city(country: str, language: str, *sources) -> CityNewsConfig:
    return CityNewsConfig(
        countryCode=country,
        languageCode=language,
        sources=[MainstreamSource(sourceName=name, domain=domain) for name, domain in sources],
    )


LOCATION_NEWS_SOURCES: Dict[str, CityNewsConfig] = {
    # Australia
    "Melbourne": _city(
        "AU", "en-AU",
        ("The Age", "theage.com.au"),
        ("Herald Sun", "heraldsun.com.au"),
        ("The Guardian Australia", "theguardian.com"),
        ("The Australian", "theaustralian.com.au"),
        ("ABC News", "abc.net.au"),
        ("9News", "9news.com.au"),
        ("7NEWS", "7news.com.au"),
    ),
    "Sydney": _city(
        "AU", "en-AU",
        ("Sydney Morning Herald", "smh.com.au"),
        ("Daily Telegraph", "dailytelegraph.com.au"),
        ("The Guardian Australia", "theguardian.com"),
        ("The Australian", "theaustralian.com.au"),
        ("ABC News", "abc.net.au"),
        ("9News", "9news.com.au"),
        ("7NEWS", "7news.com.au"),
    ),
    "Brisbane": _city(
        "AU", "en-AU",
        ("The Courier Mail", "couriermail.com.au"),
        ("Brisbane Times", "brisbanetimes.com.au"),
        ("The Guardian Australia", "theguardian.com"),
        ("ABC News", "abc.net.au"),
        ("9News", "9news.com.au"),
        ("7NEWS", "7news.com.au"),
    ),
    "Perth": _city(
        "AU", "en-AU",
        ("The West Australian", "thewest.com.au"),
        ("WAtoday", "watoday.com.au"),
        ("The Guardian Australia", "theguardian.com"),
        ("ABC News", "abc.net.au"),
        ("9News", "9news.com.au"),
        ("7NEWS", "7news.com.au"),
    ),
    "Adelaide": _city(
        "AU", "en-AU",
        ("The Advertiser", "adelaidenow.com.au"),
        ("InDaily", "indaily.com.au"),
        ("The Guardian Australia", "theguardian.com"),
        ("ABC News", "abc.net.au"),
        ("9News", "9news.com.au"),
        ("7NEWS", "7news.com.au"),
    ),
    "Canberra": _city(
        "AU", "en-AU",
        ("The Canberra Times", "canberratimes.com.au"),
        ("ABC News", "abc.net.au"),
        ("The Guardian Australia", "theguardian.com"),
        ("The Australian", "theaustralian.com.au"),
        ("9News", "9news.com.au"),
    ),

    # United States
    "New York": _city(
        "US", "en-US",
        ("The New York Times", "nytimes.com"),
        ("New York Post", "nypost.com"),
        ("Wall Street Journal", "wsj.com"),
        ("New York Daily News", "nydailynews.com"),
        ("Gothamist", "gothamist.com"),
        ("NBC New York", "nbcnewyork.com"),
        ("ABC7 New York", "abc7ny.com"),
    ),
    "Los Angeles": _city(
        "US", "en-US",
        ("Los Angeles Times", "latimes.com"),
        ("LA Daily News", "dailynews.com"),
        ("KTLA", "ktla.com"),
        ("NBC Los Angeles", "nbclosangeles.com"),
        ("ABC7 Los Angeles", "abc7.com"),
        ("LAist", "laist.com"),
    ),
    "Chicago": _city(
        "US", "en-US",
        ("Chicago Tribune", "chicagotribune.com"),
        ("Chicago Sun-Times", "suntimes.com"),
        ("Block Club Chicago", "blockclubchicago.org"),
        ("NBC Chicago", "nbcchicago.com"),
        ("ABC7 Chicago", "abc7chicago.com"),
        ("WGN TV", "wgntv.com"),
    ),
    "San Francisco": _city(
        "US", "en-US",
        ("San Francisco Chronicle", "sfchronicle.com"),
        ("SF Gate", "sfgate.com"),
        ("The San Francisco Standard", "sfstandard.com"),
        ("NBC Bay Area", "nbcbayarea.com"),
        ("ABC7 Bay Area", "abc7news.com"),
        ("KQED", "kqed.org"),
    ),

    # United Kingdom
    "London": _city(
        "GB", "en-GB",
        ("BBC News", "bbc.com"),
        ("The Guardian", "theguardian.com"),
        ("The Times", "thetimes.com"),
        ("Evening Standard", "standard.co.uk"),
        ("The Telegraph", "telegraph.co.uk"),
        ("The Independent", "independent.co.uk"),
        ("Sky News", "news.sky.com"),
    ),
    "Manchester": _city(
        "GB", "en-GB",
        ("Manchester Evening News", "manchestereveningnews.co.uk"),
        ("BBC News", "bbc.com"),
        ("The Guardian", "theguardian.com"),
        ("The Times", "thetimes.com"),
        ("Sky News", "news.sky.com"),
    ),

    # Canada
    "Toronto": _city(
        "CA", "en-CA",
        ("Toronto Star", "thestar.com"),
        ("Globe and Mail", "theglobeandmail.com"),
        ("CBC News", "cbc.ca"),
        ("National Post", "nationalpost.com"),
        ("CTV News", "ctvnews.ca"),
        ("BlogTO", "blogto.com"),
    ),
    "Vancouver": _city(
        "CA", "en-CA",
        ("Vancouver Sun", "vancouversun.com"),
        ("The Province", "theprovince.com"),
        ("CBC News", "cbc.ca"),
        ("Global News", "globalnews.ca"),
        ("CTV News", "ctvnews.ca"),
        ("Daily Hive", "dailyhive.com"),
    ),

    # New Zealand
    "Auckland": _city(
        "NZ", "en-NZ",
        ("NZ Herald", "nzherald.co.nz"),
        ("Stuff", "stuff.co.nz"),
        ("RNZ", "rnz.co.nz"),
        ("Newshub", "newshub.co.nz"),
        ("1 News", "1news.co.nz"),
    ),
    "Wellington": _city(
        "NZ", "en-NZ",
        ("Stuff", "stuff.co.nz"),
        ("NZ Herald", "nzherald.co.nz"),
        ("RNZ", "rnz.co.nz"),
        ("Newshub", "newshub.co.nz"),
        ("1 News", "1news.co.nz"),
    ),
}

DEFAULT_CONFIG = CityNewsConfig(countryCode="US", languageCode="en-US", sources=[])
