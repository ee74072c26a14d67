"""
内置模板

HTML 类模板使用 Jinja2 默认分隔符；LaTeX 类模板使用 \\BLOCK{} / \\VAR{} / \\#{}，
避免与 LaTeX 的 {% 与 {# 冲突。
"""

from __future__ import annotations

HTML = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.0 Strict//EN"
    "http://www.w3.org/TR/xhtml1/DTD/xhtml1-strict.dtd">
<html xmlns="http://www.w3.org/1999/xhtml" xml:lang="{{ doc.language_code }}" lang="{{ doc.language_code }}">
<head>
  <meta http-equiv="Content-type" content="application/xhtml+xml; charset=UTF-8" />
  <title>{{ doc.header_as_html.title | strip_tags }}</title>
  <style type="text/css">
{{ css }}
  </style>
</head>
<body>
 <div id="page">
  {% if doc.header_as_html.author %}
  <h2>{{ doc.header_as_html.author }}</h2>
  {% endif %}
  <h1>{{ doc.header_as_html.title }}</h1>
  {% if doc.header_as_html.subtitle %}
  <h2>{{ doc.header_as_html.subtitle }}</h2>
  {% endif %}
  {% set toc = doc.toc_as_html() %}
  {% if toc %}
  <div class="table-of-contents">
  {{ toc }}
  </div>
  {% endif %}
 <div id="thework">
{{ doc.as_html() }}
 </div>
  <hr />
  <div id="impressum">
    {% if doc.header_as_html.source %}
    <div id="source">{{ doc.header_as_html.source }}</div>
    {% endif %}
    {% if doc.header_as_html.notes %}
    <div id="notes">{{ doc.header_as_html.notes }}</div>
    {% endif %}
  </div>
 </div>
</body>
</html>
"""

BARE_HTML = """{% set toc = doc.toc_as_html() -%}
{% if toc -%}
<div class="table-of-contents">
{{ toc }}
</div>
{% endif -%}
<div id="thework">
{{ doc.as_html() }}
</div>
"""

MINIMAL_HTML = """<?xml version="1.0" encoding="utf-8"?>
<!DOCTYPE html PUBLIC "-//W3C//DTD XHTML 1.1//EN" "http://www.w3.org/TR/xhtml11/DTD/xhtml11.dtd">
<html xmlns="http://www.w3.org/1999/xhtml">
  <head>
    <title>{{ title }}</title>
    <link href="stylesheet.css" type="text/css" rel="stylesheet" />
  </head>
  <body>
    <div id="page">
      {{ text }}
    </div>
  </body>
</html>
"""

TITLE_PAGE_HTML = """<div class="amw-title-page">
{% if doc.header_as_html.author %}
  <h2>{{ doc.header_as_html.author }}</h2>
{% endif %}
  <h1>{{ doc.header_as_html.title }}</h1>
{% if doc.header_as_html.subtitle %}
  <h2>{{ doc.header_as_html.subtitle }}</h2>
{% endif %}
{% if doc.header_as_html.date %}
  <h3>{{ doc.header_as_html.date }}</h3>
{% endif %}
</div>
"""

CSS = """html,body {
    margin:0;
    padding:0;
    border: none;
    background: transparent;
    font-family: serif;
    background-color: white;
}

#page {
    margin:20px;
    padding:20px;
}

h1, h2, h3, h4, h5, h6 {
    font-family: sans-serif;
    text-align: center;
}

p {
    margin: 1em 0;
    text-align: justify;
}

.table-of-contents {
    margin: 2em 0;
}

.tableofcontentline {
    margin: 0.2em 0;
    text-align: left;
}

.toclevel2 { margin-left: 2em; }
.toclevel3 { margin-left: 3em; }
.toclevel4 { margin-left: 4em; }

.amw-title-page {
    margin: 4em 0;
    page-break-after: always;
}

#impressum {
    font-size: 0.9em;
    text-align: center;
}

img {
    max-width: 100%;
}
"""

LATEX = r"""\documentclass[DIV=\VAR{safe_options.division},%
               fontsize=\VAR{safe_options.fontsize}pt,%
               \VAR{safe_options.paging},%
               BCOR=\VAR{safe_options.bcor},%
               open=\VAR{safe_options.opening},%
               paper=\VAR{safe_options.papersize}]{\VAR{safe_options.documentclass}}
\usepackage{fontspec}
\usepackage{polyglossia}
\setmainfont[Mapping=tex-text]{\VAR{safe_options.mainfont}}
\setsansfont[Mapping=tex-text,Scale=MatchLowercase]{DejaVu Sans}
\setmonofont[Mapping=tex-text,Scale=MatchLowercase]{DejaVu Sans Mono}
\setmainlanguage{\VAR{doc.language | typeset_language}}
\BLOCK{if doc.other_languages}
\setotherlanguages{\VAR{doc.other_languages | map('typeset_language') | unique | join(',')}}
\BLOCK{endif}
\usepackage{microtype}
\usepackage{graphicx}
\usepackage{alltt}
\usepackage{verbatim}
\PassOptionsToPackage{hyphens}{url}\usepackage[hyperfootnotes=false,hidelinks,breaklinks=true]{hyperref}
\usepackage{bookmark}
\usepackage[stable]{footmisc}
\usepackage{enumerate}
\usepackage{tabularx}
\usepackage[normalem]{ulem}
\usepackage{wrapfig}
\usepackage{indentfirst}
\setcounter{secnumdepth}{-2}

\renewcommand*{\captionformat}{}
\renewcommand*{\figureformat}{}
\renewcommand*{\tableformat}{}
\KOMAoption{captions}{belowfigure,nooneline}
\addtokomafont{caption}{\centering}

\newcommand*{\forcelinebreak}{\strut\\{}}

\newcommand*{\hairline}{%
  \bigskip%
  \noindent \hrulefill%
  \bigskip%
}

\newenvironment*{amusebiblio}{
  \leftskip=\parindent
  \parindent=-\parindent
  \smallskip
  \indent
}{\smallskip}

\newenvironment*{amuseplay}{
  \leftskip=\parindent
  \parindent=-\parindent
  \smallskip
  \indent
}{\smallskip}

\newcommand*{\Slash}{\slash\hspace{0pt}}

\pagestyle{plain}
\addtokomafont{disposition}{\rmfamily}
\clubpenalty=10000
\widowpenalty=10000
\frenchspacing
\sloppy

\title{\VAR{doc.header_as_latex.title}}
\date{\VAR{doc.header_as_latex.date}}
\author{\VAR{doc.header_as_latex.author}}
\subtitle{\VAR{doc.header_as_latex.subtitle}}
\begin{document}
\BLOCK{if safe_options.nocoverpage}
\thispagestyle{empty}
\begin{center}
{\Large \VAR{doc.header_as_latex.author}\par}
\bigskip
{\LARGE\bfseries \VAR{doc.header_as_latex.title}\par}
\end{center}
\BLOCK{else}
\BLOCK{if safe_options.cover}
\begin{titlepage}
\centering
\includegraphics[width=\VAR{safe_options.coverwidth}\textwidth]{\VAR{safe_options.cover}}
\end{titlepage}
\BLOCK{endif}
\maketitle
\BLOCK{endif}

\BLOCK{if doc.wants_toc and not safe_options.notoc}
\tableofcontents
\cleardoublepage
\BLOCK{endif}

\VAR{doc.as_latex()}

\BLOCK{if doc.wants_postamble}
\cleardoublepage

\thispagestyle{empty}
\strut
\vfill

\begin{center}

\VAR{doc.header_as_latex.author}

\VAR{doc.header_as_latex.title}

\VAR{doc.header_as_latex.subtitle}

\VAR{doc.header_as_latex.date}

\bigskip

\VAR{doc.header_as_latex.source}

\VAR{doc.header_as_latex.notes}

\end{center}
\BLOCK{endif}

\end{document}
"""

BARE_LATEX = r"""\cleardoublepage
\begin{center}
\BLOCK{if doc.header_as_latex.author}
{\Large \VAR{doc.header_as_latex.author}\par}
\bigskip
\BLOCK{endif}
{\LARGE\bfseries \VAR{doc.header_as_latex.title}\par}
\BLOCK{if doc.header_as_latex.subtitle}
\bigskip
{\large \VAR{doc.header_as_latex.subtitle}\par}
\BLOCK{endif}
\end{center}
\addcontentsline{toc}{part}{\VAR{doc.header_as_latex.title}}

\VAR{doc.as_latex()}
"""

BUILTIN_TEMPLATES: dict[str, str] = {
    "html": HTML,
    "bare_html": BARE_HTML,
    "minimal_html": MINIMAL_HTML,
    "title_page_html": TITLE_PAGE_HTML,
    "css": CSS,
    "latex": LATEX,
    "bare_latex": BARE_LATEX,
}

LATEX_TEMPLATES = frozenset({"latex", "bare_latex"})
