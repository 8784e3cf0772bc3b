#!/usr/bin/env python
from typing import Dict
from typing import Optional

nsmap: Dict[str, str] = {
    "D": "DAV:",
    "C": "urn:ietf:params:xml:ns:caldav",
}

## The calendarserver namespace carries getctag and the subscription
## source property, the apple one carries calendar-color and the
## owncloud one carries the sharing extension.
## Neither is needed in every request, so they stay out of the
## default nsmap.
nsmap2: Dict[str, str] = nsmap.copy()
nsmap2["CS"] = "http://calendarserver.org/ns/"
nsmap2["I"] = "http://apple.com/ns/ical/"
nsmap2["O"] = "http://owncloud.org/ns"


def ns(prefix: str, tag: Optional[str] = None) -> str:
    name = "{%s}" % nsmap2[prefix]
    if tag is not None:
        name = "%s%s" % (name, tag)
    return name
